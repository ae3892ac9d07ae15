from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel

from app.agent.llm_client import LLMClient

InType = TypeVar("InType", bound=BaseModel)
OutType = TypeVar("OutType", bound=BaseModel)


class BaseAgent(ABC, Generic[InType, OutType]):
    """Abstract base class for the generation agents."""

    def __init__(self, model_name: str | None = None, llm: LLMClient | None = None):
        self.llm = llm or LLMClient(model_name=model_name)

    @abstractmethod
    async def run(self, input_data: InType) -> OutType:
        """Run the agent on the given input to produce the output artifact."""
        pass
