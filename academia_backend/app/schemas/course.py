from pydantic import BaseModel, Field


class CourseCreate(BaseModel):
    code: str = Field(..., min_length=1)
    title: str | None = None
    credits: int | None = Field(None, ge=0)
    department: str | None = None


class CourseCreateRequest(BaseModel):
    courses: list[CourseCreate]


class CourseResponse(CourseCreate):
    id: int

    model_config = {
        "from_attributes": True,
    }
