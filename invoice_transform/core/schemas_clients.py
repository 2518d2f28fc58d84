"""Pydantic schemas for clients and client-name resolution."""

from pydantic import BaseModel, ConfigDict, Field

from invoice_transform.core.similarity import MatchStrength


class Client(BaseModel):
    """A client record owned by a user."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class ClientMatch(BaseModel):
    """A scored candidate client for a spoken name."""

    client_id: str
    name: str
    similarity: float = Field(ge=0.0, le=1.0)
    exact: bool = False
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @classmethod
    def from_client(cls, client: Client, similarity: float, exact: bool = False) -> "ClientMatch":
        return cls(
            client_id=client.id,
            name=client.name,
            similarity=similarity,
            exact=exact,
            email=client.email,
            phone=client.phone,
            address=client.address,
        )


class ClientResolution(BaseModel):
    """Outcome of resolving a spoken name to a single client."""

    client: Client | None = None
    confidence: float = 0.0
    needs_confirmation: bool = False
    match_strength: MatchStrength = MatchStrength.NONE


class ClientSuggestions(BaseModel):
    """Disambiguation list for a spoken name."""

    suggestions: list[ClientMatch] = []
    exact_match: ClientMatch | None = None
    searched_for: str = ""


class ResolveClientRequest(BaseModel):
    """Request body for resolving a spoken client name."""
    name: str = Field(..., min_length=1)


class SuggestClientsRequest(BaseModel):
    """Request body for client suggestions."""
    name: str = Field(..., min_length=1)
    limit: int | None = Field(default=None, ge=1, le=50)
