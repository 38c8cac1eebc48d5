"""
Request schemas for the tour routes.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


Arrange = Literal["A", "C", "D", "E", "O", "Q", "R", "S"]


class SearchParams(BaseModel):
    """Keyword search filters."""

    keyword: Optional[str] = None
    content_type_id: Optional[int] = Field(default=None, alias="contentTypeId", gt=0)
    area_code: Optional[int] = Field(default=None, alias="areaCode", gt=0)
    sigungu_code: Optional[int] = Field(default=None, alias="sigunguCode", gt=0)
    cat1: Optional[str] = None
    cat2: Optional[str] = None
    cat3: Optional[str] = None
    page_no: int = Field(default=1, alias="pageNo", ge=1)
    num_of_rows: int = Field(default=20, alias="numOfRows", ge=1, le=100)
    arrange: Optional[Arrange] = None

    @field_validator("arrange", mode="before")
    @classmethod
    def _upper_arrange(cls, value):
        return value.upper() if isinstance(value, str) else value


class NearbyParams(BaseModel):
    """Location-based search around a coordinate."""

    map_x: float = Field(alias="mapX")
    map_y: float = Field(alias="mapY")
    radius: int = Field(default=5000, ge=100, le=20000)
    content_type_id: Optional[int] = Field(default=None, alias="contentTypeId", gt=0)
    area_code: Optional[int] = Field(default=None, alias="areaCode", gt=0)
    sigungu_code: Optional[int] = Field(default=None, alias="sigunguCode", gt=0)
    cat1: Optional[str] = None
    cat2: Optional[str] = None
    cat3: Optional[str] = None
    arrange: Arrange = "E"
    page_no: int = Field(default=1, alias="pageNo", ge=1)
    num_of_rows: int = Field(default=20, alias="numOfRows", ge=1, le=100)


class InvalidateRequest(BaseModel):
    pattern: str = Field(min_length=1)


class WarmRequest(BaseModel):
    content_ids: List[str] = Field(min_length=1)
    ttl_seconds: Optional[float] = None
