from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)

# Strict members so "1" never becomes 1 and True never becomes 1
ContextValue = StrictBool | StrictInt | StrictFloat | StrictStr


class Challenge(BaseModel):
    """A signed proof-of-work challenge. Only `token` is sent to clients."""

    model_config = ConfigDict(frozen=True)

    issued_at: StrictInt
    expires_at: StrictInt
    id: str = Field(..., min_length=1, description="Unique challenge id (JWT jti)")
    salt: str = Field(..., pattern=r"^[0-9a-fA-F]{32}$")
    target_hex: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    context: dict[str, ContextValue] = Field(default_factory=dict)
    token: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_invariants(self):
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")
        if self.target == 0:
            raise ValueError("target must be greater than zero")
        return self

    @property
    def target(self) -> int:
        return int(self.target_hex, 16)

    @property
    def target_bytes(self) -> bytes:
        return bytes.fromhex(self.target_hex)


class Solution(BaseModel):
    """A nonce claimed to satisfy a challenge token."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1)
    nonce: StrictInt = Field(..., ge=0)
    # Solver instrumentation, ignored by verification
    attempts: int | None = None
    elapsed_ms: float | None = None


class ChallengeCreate(BaseModel):
    context: dict[str, ContextValue] | None = Field(
        None, description="Business context bound into the signed token"
    )
    difficulty_factor: float | None = Field(
        None, ge=1.0, description="Requested difficulty; server default when omitted"
    )


class ChallengeResponse(BaseModel):
    token: str
    challenge_id: str
    issued_at: int
    expires_at: int
    target: str
    difficulty_factor: float
    algorithm: str = "sha256"


class SolutionSubmit(BaseModel):
    token: str = Field(..., min_length=1)
    nonce: int = Field(..., ge=0)
    expected_context: dict[str, ContextValue] | None = None


class VerificationResponse(BaseModel):
    valid: bool
    challenge_id: str
