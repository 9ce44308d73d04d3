from pydantic import BaseModel, Field


class MenuCategoryConfig(BaseModel):
    hours: str = ""
    # Entries in the "Name - ₹price" form used by hotel menu sheets
    items: list[str] = Field(default_factory=list)


class MenuConfig(BaseModel):
    categories: dict[str, MenuCategoryConfig]
