from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Literal, Any, Dict
from datetime import datetime


TechCategory = Literal[
    "frontend", "backend", "database", "hosting", "mobile", "ai-ml",
    "analytics", "authentication", "payment", "storage", "monitoring", "devops",
]

Difficulty = Literal["beginner", "intermediate", "advanced"]

Complexity = Literal["simple", "moderate", "complex"]


class TechnologySuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    category: TechCategory
    description: str
    reasoning: str
    difficulty: Difficulty
    alternatives: Optional[List[str]] = None


class TechStackRecommendation(BaseModel):
    """Envelope the model is asked to emit for tech-stack generation"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    suggestions: List[TechnologySuggestion]
    project_type: str = Field(..., alias="projectType")
    complexity: Complexity
    estimated_timeframe: str = Field(..., alias="estimatedTimeframe")
    key_features: List[str] = Field(..., alias="keyFeatures")


class TechStackGenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    backlog_id: str = Field(..., alias="backlogId", min_length=1)


class SaveTechStackRequest(TechStackRecommendation):
    backlog_id: str = Field(..., alias="backlogId", min_length=1)


class TechStackSuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    backlog_id: str
    user_id: str
    project_type: str
    complexity: str
    estimated_timeframe: str
    key_features: List[str] = []
    suggestions: List[Dict[str, Any]] = []
    created_at: datetime
    updated_at: datetime
