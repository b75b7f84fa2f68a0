# pagerescue/vision/prompts/registry.py

from dataclasses import dataclass

from pagerescue.vision.prompts import templates

@dataclass(frozen=True)
class PromptTemplate:
    name: str
    version: str
    template: str

PROMPTS: dict[tuple[str, str], PromptTemplate] = {
    ("extract_page_text", "v1"): PromptTemplate("extract_page_text", "v1", templates.EXTRACT_PAGE_TEXT_V1),
    ("extract_page_text", "v2"): PromptTemplate("extract_page_text", "v2", templates.EXTRACT_PAGE_TEXT_V2),
}

def get_prompt(name: str, version: str) -> PromptTemplate:
    key = (name, version)
    if key not in PROMPTS:
        raise KeyError(f"Unknown prompt: {name}@{version}")
    return PROMPTS[key]


def render_prompt(name: str, version: str, variables: dict) -> str:
    safe_vars = dict(variables)
    safe_vars.setdefault("__EXTRA_INSTRUCTIONS__", "")
    out = get_prompt(name, version).template
    for k, v in safe_vars.items():
        out = out.replace("{{" + k + "}}", str(v))
    return out.strip()
