"""
Generation Endpoint Tests

The LLM client is replaced by the scripted FakeLLMService from conftest;
these tests cover request handling, context reads and SSE framing.
"""
import pytest

from models.user_story import UserStoriesResponse
from models.task import TasksResponse
from models.tech_stack import TechStackRecommendation
from services.llm_service import GenerationError
from services.strict_output_service import GenerationPurpose


GENERATED_STORIES = {
    "stories": [
        {
            "title": f"As an owner, I want capability {n} so that walks are easy",
            "description": f"Capability {n}",
            "acceptanceCriteria": ["First check", "Second check"],
        }
        for n in range(1, 7)
    ]
}

GENERATED_TASKS = {
    "tasks": [
        {"title": f"Task {n}", "description": f"Implement part {n}", "priority": "medium", "estimatedHours": 2}
        for n in range(4)
    ]
}


async def create_backlog(client, headers, description="Booking app for dog owners"):
    response = await client.post("/api/backlogs", json={"name": "Dog Walker", "description": description}, headers=headers)
    return response.json()["id"]


class TestGenerateStories:

    @pytest.mark.anyio
    async def test_streams_partials_then_complete_then_done(self, client, fake_llm, sse_events):
        fake_llm.partials = [{"stories": [{"title": "As an"}]}]
        fake_llm.result = GENERATED_STORIES

        response = await client.post("/api/generate-stories", json={
            "prompt": "A dog-walking booking app for owners and walkers"
        })

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["partial", "complete", "done"]
        assert events[1]["data"] == GENERATED_STORIES

        call = fake_llm.calls[0]
        assert call["schema"] is UserStoriesResponse
        assert call["profile"].purpose == GenerationPurpose.STORIES
        assert call["user_id"] is None
        assert "A dog-walking booking app" in call["user_prompt"]

    @pytest.mark.anyio
    async def test_generated_stories_save_unchanged(self, client, fake_llm, sse_events, auth_headers):
        fake_llm.result = GENERATED_STORIES
        headers = auth_headers()

        response = await client.post("/api/generate-stories", json={
            "prompt": "A dog-walking booking app for owners and walkers"
        }, headers=headers)
        complete = [e for e in sse_events(response.text) if e["type"] == "complete"][0]

        saved = await client.post("/api/save-stories", json=complete["data"], headers=headers)

        assert saved.status_code == 200
        assert saved.json()["count"] == len(GENERATED_STORIES["stories"])
        assert fake_llm.calls[0]["user_id"] == "user-alice"

    @pytest.mark.anyio
    @pytest.mark.parametrize("prompt", ["short", "x" * 1001])
    async def test_invalid_prompt_is_400(self, client, fake_llm, prompt):
        response = await client.post("/api/generate-stories", json={"prompt": prompt})

        assert response.status_code == 400
        assert fake_llm.calls == []

    @pytest.mark.anyio
    async def test_invalid_token_still_rejected(self, client):
        response = await client.post(
            "/api/generate-stories",
            json={"prompt": "A dog-walking booking app"},
            headers={"Authorization": "Bearer broken"}
        )
        assert response.status_code == 401

    @pytest.mark.anyio
    async def test_generation_failure_ends_with_error(self, client, fake_llm, sse_events):
        fake_llm.partials = [{"stories": [{"title": "As"}]}]
        fake_llm.error = GenerationError("Model response did not match the expected schema", ["stories: too short"])

        response = await client.post("/api/generate-stories", json={"prompt": "A dog-walking booking app"})

        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["partial", "error"]
        assert events[-1]["errors"] == ["stories: too short"]

    @pytest.mark.anyio
    async def test_unexpected_failure_ends_with_generic_error(self, client, fake_llm, sse_events):
        fake_llm.error = RuntimeError("socket closed")

        response = await client.post("/api/generate-stories", json={"prompt": "A dog-walking booking app"})

        events = sse_events(response.text)
        assert events[-1]["type"] == "error"
        assert "socket closed" not in events[-1]["message"]


class TestGenerateStoriesFromChat:

    @pytest.mark.anyio
    async def test_uses_conversation_and_existing_stories(self, client, fake_llm, auth_headers, sse_events):
        headers = auth_headers()
        backlog_id = await create_backlog(client, headers)
        await client.post("/api/save-stories", json={
            "backlogId": backlog_id,
            "stories": [{"title": "Walker profiles", "description": "Profiles", "acceptanceCriteria": ["Photo"]}],
        }, headers=headers)
        fake_llm.result = GENERATED_STORIES

        response = await client.post("/api/generate-stories-from-chat", json={
            "backlogId": backlog_id,
            "messages": [
                {"role": "user", "content": "Owners should rate walkers", "id": "m1"},
                {"role": "assistant", "content": "Ratings after each walk?"},
            ],
        }, headers=headers)

        assert [e["type"] for e in sse_events(response.text)] == ["complete", "done"]
        prompt = fake_llm.calls[0]["system_prompt"]
        assert "User: Owners should rate walkers" in prompt
        assert "Assistant: Ratings after each walk?" in prompt
        assert "EXISTING STORIES TO AVOID DUPLICATION" in prompt
        assert "Walker profiles" in prompt

    @pytest.mark.anyio
    async def test_empty_messages_is_400(self, client, auth_headers):
        headers = auth_headers()
        backlog_id = await create_backlog(client, headers)

        response = await client.post("/api/generate-stories-from-chat", json={
            "backlogId": backlog_id, "messages": []
        }, headers=headers)

        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_foreign_backlog_is_404(self, client, fake_llm, auth_headers):
        backlog_id = await create_backlog(client, auth_headers("user-alice"))

        response = await client.post("/api/generate-stories-from-chat", json={
            "backlogId": backlog_id, "messages": [{"role": "user", "content": "hi"}]
        }, headers=auth_headers("user-bob"))

        assert response.status_code == 404
        assert fake_llm.calls == []


class TestGenerateTasks:

    @pytest.mark.anyio
    async def test_includes_story_and_existing_tasks(self, client, fake_llm, auth_headers, sse_events):
        headers = auth_headers()
        saved = await client.post("/api/save-stories", json={
            "stories": [{"title": "Book a walk", "description": "Owners book", "acceptanceCriteria": ["Slot picker"]}]
        }, headers=headers)
        story_id = saved.json()["savedStories"][0]["id"]
        await client.post("/api/save-tasks", json={
            "userStoryId": story_id, "tasks": [{"title": "Schema", "description": "Bookings table"}]
        }, headers=headers)
        fake_llm.result = GENERATED_TASKS

        response = await client.post("/api/generate-tasks", json={
            "userStoryId": story_id, "context": "Mobile first"
        }, headers=headers)

        events = sse_events(response.text)
        assert events[-2]["data"] == GENERATED_TASKS
        call = fake_llm.calls[0]
        assert call["schema"] is TasksResponse
        assert "Title: Book a walk" in call["system_prompt"]
        assert "- Schema: Bookings table" in call["system_prompt"]
        assert "ADDITIONAL CONTEXT: Mobile first" in call["system_prompt"]

    @pytest.mark.anyio
    async def test_generate_then_save_four_tasks(self, client, fake_llm, auth_headers, sse_events):
        headers = auth_headers()
        saved = await client.post("/api/save-stories", json={
            "stories": [{"title": "Book a walk", "description": "Owners book", "acceptanceCriteria": ["Slot picker"]}]
        }, headers=headers)
        story_id = saved.json()["savedStories"][0]["id"]
        fake_llm.result = GENERATED_TASKS

        response = await client.post("/api/generate-tasks", json={"userStoryId": story_id}, headers=headers)
        generated = [e for e in sse_events(response.text) if e["type"] == "complete"][0]["data"]

        result = await client.post("/api/save-tasks", json={"userStoryId": story_id, **generated}, headers=headers)

        assert [t["order_index"] for t in result.json()["savedTasks"]] == [0, 1, 2, 3]
        assert [t["title"] for t in result.json()["savedTasks"]] == ["Task 0", "Task 1", "Task 2", "Task 3"]

    @pytest.mark.anyio
    async def test_malformed_story_id_is_400(self, client, auth_headers):
        response = await client.post("/api/generate-tasks", json={"userStoryId": "abc"}, headers=auth_headers())
        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_unknown_story_is_404(self, client, auth_headers):
        response = await client.post("/api/generate-tasks", json={
            "userStoryId": "6f1f3c1e-8d59-4a43-9d55-0d0f0b8a3e11"
        }, headers=auth_headers())
        assert response.status_code == 404


class TestGenerateTechStack:

    @pytest.mark.anyio
    async def test_includes_all_backlog_stories(self, client, fake_llm, auth_headers, sse_events):
        headers = auth_headers()
        backlog_id = await create_backlog(client, headers)
        await client.post("/api/save-stories", json={
            "backlogId": backlog_id,
            "stories": [
                {"title": f"Story {n}", "description": "d", "acceptanceCriteria": ["c"]} for n in range(12)
            ],
        }, headers=headers)
        fake_llm.result = {"suggestions": [], "projectType": "Web", "complexity": "simple",
                           "estimatedTimeframe": "1 month", "keyFeatures": []}

        response = await client.post("/api/generate-tech-stack", json={"backlogId": backlog_id}, headers=headers)

        assert sse_events(response.text)[-1] == {"type": "done"}
        call = fake_llm.calls[0]
        assert call["schema"] is TechStackRecommendation
        assert call["profile"].purpose == GenerationPurpose.TECH_STACK
        assert "Story 11" in call["user_prompt"]
        assert "Booking app for dog owners" in call["user_prompt"]

    @pytest.mark.anyio
    async def test_foreign_backlog_is_404(self, client, auth_headers):
        backlog_id = await create_backlog(client, auth_headers("user-alice"))

        response = await client.post("/api/generate-tech-stack", json={"backlogId": backlog_id}, headers=auth_headers("user-bob"))

        assert response.status_code == 404


class TestChat:

    @pytest.mark.anyio
    async def test_streams_chunks_with_history(self, client, fake_llm, auth_headers, sse_events):
        headers = auth_headers()
        backlog_id = await create_backlog(client, headers)
        url = f"/api/backlogs/{backlog_id}/messages"
        await client.post(url, json={"role": "user", "content": "Earlier question"}, headers=headers)
        await client.post(url, json={"role": "assistant", "content": "Earlier answer"}, headers=headers)

        response = await client.post("/api/chat", json={
            "backlogId": backlog_id, "messages": [{"role": "user", "content": "What next?"}]
        }, headers=headers)

        events = sse_events(response.text)
        assert [e["type"] for e in events] == ["chunk", "chunk", "done"]
        assert "".join(e["content"] for e in events if e["type"] == "chunk") == "Happy to help with this backlog."

        call = fake_llm.calls[0]
        assert call["kind"] == "text"
        assert [m["content"] for m in call["messages"]] == ["Earlier question", "Earlier answer", "What next?"]
        assert '"Dog Walker"' in call["system_prompt"]

    @pytest.mark.anyio
    async def test_history_window(self, client, fake_llm, auth_headers):
        headers = auth_headers()
        backlog_id = await create_backlog(client, headers)
        for n in range(22):
            await client.post(f"/api/backlogs/{backlog_id}/messages", json={
                "role": "user", "content": f"turn {n}"
            }, headers=headers)

        await client.post("/api/chat", json={
            "backlogId": backlog_id, "messages": [{"role": "user", "content": "latest"}]
        }, headers=headers)

        contents = [m["content"] for m in fake_llm.calls[0]["messages"]]
        assert len(contents) == 21
        assert contents[0] == "turn 2"
        assert contents[-2:] == ["turn 21", "latest"]

    @pytest.mark.anyio
    async def test_failure_ends_with_error(self, client, fake_llm, auth_headers, sse_events):
        headers = auth_headers()
        backlog_id = await create_backlog(client, headers)
        fake_llm.error = GenerationError("Generation timed out")

        response = await client.post("/api/chat", json={
            "backlogId": backlog_id, "messages": [{"role": "user", "content": "hi"}]
        }, headers=headers)

        assert sse_events(response.text)[-1]["type"] == "error"

    @pytest.mark.anyio
    async def test_unknown_backlog_is_404(self, client, auth_headers):
        response = await client.post("/api/chat", json={
            "backlogId": "missing", "messages": [{"role": "user", "content": "hi"}]
        }, headers=auth_headers())
        assert response.status_code == 404

    @pytest.mark.anyio
    async def test_missing_messages_is_400(self, client, auth_headers):
        response = await client.post("/api/chat", json={"backlogId": "b1"}, headers=auth_headers())
        assert response.status_code == 400
