"""Shared fixtures for the sheet engine tests."""

from __future__ import annotations

import pathlib

import pytest

from sheetbuilder.engine import loader
from sheetbuilder.engine import models
from sheetbuilder.engine.actor import CharacterController
from sheetbuilder.engine.config import get_settings
from sheetbuilder.engine.messages import ChatLog

TEMPLATES_PATH = pathlib.Path(__file__).parent / "templates"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; tests that patch the environment need a fresh copy."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def template() -> models.CharacterModel:
    library = loader.load_library(TEMPLATES_PATH / "adventurer.yaml")
    assert library.bad_defs == []
    return library.templates["adventurer"]


@pytest.fixture
def chat_log() -> ChatLog:
    return ChatLog()


@pytest.fixture
def character(template: models.CharacterModel, chat_log: ChatLog) -> CharacterController:
    model = models.CharacterModel(
        id="aria",
        name="Aria",
        props={
            "level": 3,
            "str": 2,
            "hp": 7,
            "attacks": {
                "0": {"name": "Sword", "bonus": 2, "deleted": False},
                "1": {"name": "Bow", "bonus": 1, "deleted": True},
                "2": {"name": "Bow", "bonus": 4, "deleted": False},
            },
        },
    )
    controller = CharacterController(model, sink=chat_log)
    controller.reload_template(template)
    return controller
