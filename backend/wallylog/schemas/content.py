from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class QuizRequest(BaseModel):
    difficulty: Literal["easy", "medium", "hard"] | None = None
    language: str | None = Field(default=None, max_length=32)
    user_language: Literal["ko", "en", "ja"] | None = Field(default=None, alias="userLanguage")


class QuizOption(BaseModel):
    id: int
    text: str
    isCorrect: bool


class QuizResponse(BaseModel):
    id: int
    code: str
    question: str
    options: list[QuizOption]
    explanation: str


class GenerateResponse(BaseModel):
    success: bool = True
    message: str


class BabyGrowthRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    week_of_baby: int | None = Field(default=None, ge=1, le=520, alias="weekOfBaby")
    week_of_pregnancy: int | None = Field(default=None, ge=1, le=42, alias="weekOfPregnancy")

    @property
    def week(self) -> int | None:
        return self.week_of_baby or self.week_of_pregnancy


class BabyGrowthGenerateResponse(GenerateResponse):
    data: dict[str, Any]
