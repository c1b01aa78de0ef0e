from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Matches the width of tags.name.
TagName = Annotated[str, Field(max_length=100)]


# --- User ---

class UserRegister(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=8, max_length=128)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UserRegisterRequest(BaseModel):
    user: UserRegister


class UserLoginRequest(BaseModel):
    user: UserLogin


class UserUpdateRequest(BaseModel):
    user: UserUpdate


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field("", max_length=500)
    body: str = Field(min_length=1)
    tag_list: list[TagName] = Field(default_factory=list, alias="tagList")
    model_config = ConfigDict(populate_by_name=True)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, max_length=500)
    body: str | None = Field(None, min_length=1)
    tag_list: list[TagName] | None = Field(None, alias="tagList")
    model_config = ConfigDict(populate_by_name=True)


class ArticleCreateRequest(BaseModel):
    article: ArticleCreate


class ArticleUpdateRequest(BaseModel):
    article: ArticleUpdate


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CommentCreateRequest(BaseModel):
    comment: CommentCreate
