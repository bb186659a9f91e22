from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIB = 1024 * 1024


class RenditionRule(BaseModel):
    name: str = Field(pattern=r"^[a-z][a-z0-9]*$")
    max_dimension: int = Field(gt=0)


class OwnerKindRules(BaseModel):
    prefix: str
    stage: Literal["staging", "permanent"] = "permanent"
    promotes_to: str | None = None
    min_count: int = Field(default=1, ge=0)
    max_count: int = Field(gt=0)
    max_bytes: int = Field(default=10 * MIB, gt=0)
    allowed_extensions: list[str] = Field(
        default_factory=lambda: [".jpg", ".jpeg", ".png", ".webp"]
    )
    renditions: list[RenditionRule] = Field(default_factory=list)
    visibility: Literal["private", "public"] = "private"

    @field_validator("prefix")
    @classmethod
    def _prefix_is_one_segment(cls, v: str) -> str:
        if not v or "/" in v:
            raise ValueError("prefix must be a single non-empty path segment")
        return v

    @field_validator("allowed_extensions")
    @classmethod
    def _normalize_extensions(cls, v: list[str]) -> list[str]:
        return [e.lower() if e.startswith(".") else f".{e.lower()}" for e in v]

    @model_validator(mode="after")
    def _check_bounds(self) -> "OwnerKindRules":
        if self.min_count > self.max_count:
            raise ValueError("min_count must not exceed max_count")
        names = [r.name for r in self.renditions]
        if len(names) != len(set(names)):
            raise ValueError("rendition names must be unique")
        return self


class EncodingRules(BaseModel):
    format: Literal["JPEG", "WEBP", "PNG"] = "JPEG"
    quality: int = Field(default=85, ge=1, le=100)


class StoreRules(BaseModel):
    backend: Literal["s3", "local"] = "s3"
    bucket: str | None = None
    region: str | None = None
    endpoint_url: str | None = None
    local_path: str = "./media-storage"
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    read_timeout_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    retry_mode: Literal["legacy", "standard", "adaptive"] = "standard"


class UrlRules(BaseModel):
    cdn_domain: str | None = None
    default_expiry_minutes: int = Field(default=60, gt=0)
    max_expiry_minutes: int = Field(default=10080, gt=0)
    signing_secret: str = ""


class MediaRules(BaseModel):
    owner_kinds: dict[str, OwnerKindRules]
    encoding: EncodingRules = Field(default_factory=EncodingRules)
    store: StoreRules = Field(default_factory=StoreRules)
    urls: UrlRules = Field(default_factory=UrlRules)
    verify_promoted_copies: bool = True

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_owner_kinds(self) -> "MediaRules":
        prefixes = [k.prefix for k in self.owner_kinds.values()]
        if len(prefixes) != len(set(prefixes)):
            raise ValueError("owner kinds must not share a prefix")
        for name, kind in self.owner_kinds.items():
            if kind.stage == "staging":
                if kind.promotes_to is None:
                    raise ValueError(f"staging kind '{name}' needs promotes_to")
                target = self.owner_kinds.get(kind.promotes_to)
                if target is None or target.stage != "permanent":
                    raise ValueError(
                        f"'{name}' promotes to unknown or non-permanent kind "
                        f"'{kind.promotes_to}'"
                    )
                if kind.renditions != target.renditions:
                    raise ValueError(
                        f"staging kind '{name}' must have the same renditions as "
                        f"'{kind.promotes_to}'"
                    )
            elif kind.promotes_to is not None:
                raise ValueError(f"permanent kind '{name}' cannot promote")
        return self

    def kind(self, name: str) -> OwnerKindRules:
        try:
            return self.owner_kinds[name]
        except KeyError:
            raise KeyError(f"Unknown owner kind: {name}") from None
