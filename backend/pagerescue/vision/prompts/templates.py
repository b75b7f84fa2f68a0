# pagerescue/vision/prompts/templates.py

EXTRACT_PAGE_TEXT_V1 = """
Extract all text from this document page image.

Rules:
- Preserve reading order: top-to-bottom, left-to-right.
- For multi-column layouts, transcribe the left column first, then the right column, separated by a line containing only "---".
- Keep paragraph breaks as blank lines.
- Do not summarize, translate, or correct the text.
- Do not describe images or layout.

Return ONLY the extracted text, without commentary or markdown fences.
{{__EXTRA_INSTRUCTIONS__}}
""".strip()

EXTRACT_PAGE_TEXT_V2 = """
You are transcribing page {{page_number}} of a scanned or poorly encoded document.

Transcribe every visible character of running text exactly as printed.

Rules:
- Reading order: top-to-bottom, left-to-right; finish one column before starting the next and put a line containing only "---" between columns.
- Paragraphs are separated by one blank line.
- Headers, footers and page numbers stay, each on its own line.
- Illegible words become [illegible]. Never guess.
- No summaries, translations, corrections or commentary.

Return ONLY the transcribed text.
{{__EXTRA_INSTRUCTIONS__}}
""".strip()
