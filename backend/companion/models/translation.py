from pydantic import BaseModel


class TranslateRequest(BaseModel):
    text: str


class TranslationResult(BaseModel):
    translated_text: str
    alternative_translations: list[str] = []
    cached: bool = False
