from pydantic import BaseModel


class MinistryOut(BaseModel):
    id: int
    name: str
    abbrev: str | None = None
    description: str | None = None

    model_config = {"from_attributes": True}


class MinistryRef(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}
