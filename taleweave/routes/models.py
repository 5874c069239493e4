"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field

from taleweave.models import CompletionPath, MissionType, Reward, World


class CreateTemplate(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    style: str = ""
    world: World = Field(default_factory=World)


class CreateSession(BaseModel):
    world: World | None = None
    template: str | None = None
    player_name: str = "Player"
    style: str = ""
    file_id: str = ""


class ActionBody(BaseModel):
    action: str = Field(min_length=1)


class CreateMission(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    type: MissionType = "location"
    completion_paths: list[CompletionPath] = Field(min_length=1)
    reward: Reward = Field(default_factory=Reward)
    is_story_mission: bool = False
    blocks_storyline: bool = False
