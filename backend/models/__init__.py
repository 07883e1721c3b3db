from .user_story import (
    UserStoryInput, UserStoriesResponse, StoryPromptRequest, ConversationMessage,
    StoriesFromChatRequest, SaveStoriesRequest, UpdateStoryStatusRequest, UserStoryResponse
)
from .task import (
    TaskInput, TasksResponse, TaskGenerationRequest, SaveTasksRequest,
    UpdateTaskStatusRequest, TaskResponse
)
from .tech_stack import (
    TechnologySuggestion, TechStackRecommendation, TechStackGenerationRequest,
    SaveTechStackRequest, TechStackSuggestionResponse
)
from .backlog import (
    BacklogCreate, BacklogUpdate, BacklogResponse, BacklogOverviewResponse,
    ChatMessageCreate, ChatMessageResponse, ChatRequest
)
