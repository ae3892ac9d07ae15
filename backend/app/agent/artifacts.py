import uuid

from pydantic import BaseModel, Field


class StoryDraftPage(BaseModel):
    page_number: int = Field(description="1-based page number")
    content: str = Field(description="The page text: 2-3 sentences suitable for children aged 3-8")
    character_descriptions: dict[str, str] = Field(
        default_factory=dict,
        description="Character name -> how the character looks and behaves on this page, written for an illustrator",
    )


class StoryDraft(BaseModel):
    """Artifact produced by the Story Writer Agent."""
    title: str = Field(description="Story title")
    summary: str = Field(description="One or two sentence summary of the story")
    pages: list[StoryDraftPage] = Field(description="The story pages in reading order")


class StoryCharacterBrief(BaseModel):
    """What the writer and illustrator need to know about one character."""
    id: uuid.UUID | None = None
    name: str
    species: str
    physical_features: str
    personality_description: str
    clothing_accessories: str | None = None
    personality_traits: list[str] = Field(default_factory=list)
    speaking_style: str | None = None
    favorite_phrases: list[str] = Field(default_factory=list)


class StoryRequest(BaseModel):
    """Input to the Story Writer Agent."""
    theme: str
    characters: list[StoryCharacterBrief]
    moral_lesson: str | None = None
    details: str | None = None
    page_count: int = Field(default=5, ge=1, le=12)
    child_age: int | None = None


class IllustrationRequest(BaseModel):
    """Input to the Illustrator Agent for one page."""
    page_number: int
    page_text: str
    theme: str
    characters: list[StoryCharacterBrief]
    story_title: str | None = None
    style: str | None = None


class IllustrationPlan(BaseModel):
    structured_prompt: str = Field(description="Full template prompt, kept for storage")
    image_prompt: str = Field(description="Final prompt sent to the image model")
    character_memory: str


class IllustrationResult(BaseModel):
    """Artifact produced by the Illustrator Agent."""
    page_number: int
    image_url: str
    prompt: str
