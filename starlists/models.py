from pydantic import BaseModel, Field


class RepoBase(BaseModel):
    full_name: str
    name: str
    owner: str
    html_url: str
    description: str | None = None
    language: str | None = None
    stargazers_count: int | None = None
    topics: list[str] = Field(default_factory=list)
    starred_at: str | None = None


class Category(BaseModel):
    name: str
    description: str = ""


class ClassificationTarget(BaseModel):
    id: str
    description: str | None = None
    language: str | None = None
    popularity: int = 0
    enrichment_text: str | None = None

    @classmethod
    def from_repo(cls, repo: RepoBase) -> "ClassificationTarget":
        return cls(
            id=repo.full_name,
            description=repo.description,
            language=repo.language,
            popularity=int(repo.stargazers_count or 0),
        )


class ClassificationOutcome(BaseModel):
    id: str
    categories: list[str]
    source: str = "ai"
    error: str | None = None


class AssignmentResult(BaseModel):
    id: str
    success: bool
    applied_categories: list[str] | None = None
    error: str | None = None


class BackendList(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_private: bool = False
    member_ids: list[str] = Field(default_factory=list)


class StoredPlan(BaseModel):
    created_at: str
    repo_count: int
    categories: list[Category] = Field(default_factory=list)
