"""
Color Me Shop REST API Pydantic Models.

Only the shapes the authorization bridge reads are modelled here.
"""
from typing import List
from pydantic import BaseModel, Field, ConfigDict, field_validator


class ShopAccount(BaseModel):
    """Identity projection of ``GET /shop.json``."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Shop account ID")
    name: str = Field(..., description="Shop name")
    url: str = Field(..., description="Shop URL")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # Account IDs are strings like "PA01234567"; tolerate numeric IDs
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class ShopResponse(BaseModel):
    """Envelope returned by ``GET /shop.json``."""
    model_config = ConfigDict(extra="ignore")

    shop: ShopAccount


class SessionProps(BaseModel):
    """Context embedded into the issued MCP token and handed to tool calls."""
    shop_id: str = Field(..., description="Shop account ID")
    shop_name: str = Field(..., description="Shop name")
    shop_url: str = Field(..., description="Shop URL")
    access_token: str = Field(..., description="Color Me Shop access token")
    scopes: List[str] = Field(default_factory=list, description="Scopes granted to the MCP client")
