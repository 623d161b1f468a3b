from pydantic import BaseModel, Field


class StartGameRequest(BaseModel):
    player_name: str = Field(min_length=1, max_length=80)


class LoadGameRequest(BaseModel):
    # Either a save document (as read from the player's file) or a player
    # name to look up in the save directory. Neither means the player
    # cancelled the file picker.
    save: dict | None = None
    player_name: str | None = None


class StepInputRequest(BaseModel):
    value: str = Field(max_length=32)


class GenerateImageRequest(BaseModel):
    subject_name: str = Field(min_length=1, max_length=120)


class ImageStatusResponse(BaseModel):
    subjectName: str
    status: str
    imagePath: str | None = None


class GeneratedImageResponse(BaseModel):
    subjectName: str
    imagePath: str
