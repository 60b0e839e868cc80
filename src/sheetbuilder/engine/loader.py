from __future__ import annotations

import dataclasses
import json
import pathlib
import tomllib
import typing
import zipfile

import pydantic
import yaml
from packaging import version

from . import models
from .logging import get_logger

logger = get_logger(__name__)

PathLike = pathlib.Path | zipfile.Path
ModelGenerator = typing.Generator[models.CharacterModel | models.BadDefinition, None, None]


@dataclasses.dataclass
class ActorLibrary:
    """Actor documents loaded from disk.

    Attributes:
        templates: Template actors by ID.
        characters: Character actors by ID.
        bad_defs: Documents that failed to parse.
    """

    templates: dict[str, models.CharacterModel] = dataclasses.field(default_factory=dict)
    characters: dict[str, models.CharacterModel] = dataclasses.field(default_factory=dict)
    bad_defs: list[models.BadDefinition] = dataclasses.field(default_factory=list)

    def add(self, actor: models.CharacterModel) -> None:
        target = self.templates if actor.is_template else self.characters
        if actor.id in self.templates or actor.id in self.characters:
            self.bad_defs.append(
                models.BadDefinition(
                    path=actor.name,
                    data=actor.dump(),
                    exception_type="NonUniqueId",
                    exception_message=f"Non-unique ID {actor.id}",
                )
            )
            return
        target[actor.id] = actor


def load_library(path: str | PathLike, with_bad_defs: bool = True) -> ActorLibrary:
    """Load every actor document found under a path.

    Args:
        path: A directory (searched recursively), a single document file, or a
            zip archive of documents. Documents may be json, toml or yaml;
            yaml files may hold several documents.
        with_bad_defs: If true (the default), files that fail to parse and documents
            that fail validation are collected in `bad_defs` instead of raising.
    """
    if isinstance(path, str):
        if path.endswith(".zip"):
            with zipfile.ZipFile(path) as archive:
                return _load_library(zipfile.Path(archive), with_bad_defs)
        path = pathlib.Path(path)
    return _load_library(path, with_bad_defs)


def _load_library(path: PathLike, with_bad_defs: bool) -> ActorLibrary:
    library = ActorLibrary()
    if path.is_file():
        documents = _parse(path, with_bad_defs=with_bad_defs)
    else:
        documents = _parse_directory(path, with_bad_defs=with_bad_defs)
    for document in documents:
        if isinstance(document, models.BadDefinition):
            library.bad_defs.append(document)
        else:
            library.add(document)
    logger.info(
        "Loaded actor library",
        path=str(path),
        templates=len(library.templates),
        characters=len(library.characters),
        bad_defs=len(library.bad_defs),
    )
    return library


def load_character(data: dict | str) -> models.CharacterModel:
    """Load an actor document, as a dict or a JSON string.

    Raises:
        ValueError: if the document was written by a newer version of the engine.
        pydantic.ValidationError: if the document is malformed.
    """
    if isinstance(data, str):
        data = json.loads(data)
    update_data(data)
    return models.CharacterModel.model_validate(data)


def update_data(data: dict) -> dict:
    """Reject documents written by a newer engine version.

    Older documents are assumed to be forward compatible.
    """
    doc_version = data.get("systemVersion", data.get("system_version"))
    if doc_version and version.parse(models.SYSTEM_VERSION) < version.parse(doc_version):
        raise ValueError(
            f'Can not load actor id={data.get("id")} v{doc_version}'
            f" with engine v{models.SYSTEM_VERSION}"
        )
    return data


def _parse_directory(path: PathLike, with_bad_defs: bool = True) -> ModelGenerator:
    for subpath in _iter_files(path):
        stem = _stem(subpath)
        if stem.startswith("_") or stem.startswith("."):
            continue
        yield from _parse(subpath, with_bad_defs=with_bad_defs)
    for subpath in _iter_dirs(path):
        yield from _parse_directory(subpath, with_bad_defs=with_bad_defs)


def _iter_dirs(path: PathLike) -> typing.Generator[PathLike, None, None]:
    for subpath in (p for p in path.iterdir() if p.is_dir()):
        yield subpath


def _iter_files(path: PathLike) -> typing.Generator[PathLike, None, None]:
    for subpath in (p for p in path.iterdir() if p.is_file()):
        yield subpath


def _stem(path: PathLike) -> str:
    if isinstance(path, zipfile.Path):
        return pathlib.PurePosixPath(path.name).stem
    return path.stem


def _suffix(path: PathLike) -> str:
    if isinstance(path, zipfile.Path):
        return pathlib.PurePosixPath(path.name).suffix
    return path.suffix


def _parse(path: PathLike, with_bad_defs: bool = True) -> ModelGenerator:
    try:
        raw_documents = list(_parse_raw(path))
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        if not with_bad_defs:
            raise
        logger.warning("Unparsable actor file", path=str(path), error=str(exc))
        yield models.BadDefinition(
            path=str(path),
            data=None,
            exception_type=type(exc).__name__,
            exception_message=str(exc),
        )
        return
    for raw_data in raw_documents:
        if not isinstance(raw_data, dict):
            continue
        try:
            update_data(raw_data)
            yield models.CharacterModel.model_validate(raw_data)
        except (pydantic.ValidationError, ValueError) as exc:
            if not with_bad_defs:
                raise
            logger.warning("Bad actor document", path=str(path), error=str(exc))
            yield models.BadDefinition(
                path=str(path),
                data=raw_data,
                exception_type=type(exc).__name__,
                exception_message=str(exc),
            )


def _parse_raw(path: PathLike) -> typing.Generator[dict, None, None]:
    match _suffix(path):
        case ".toml":
            parser = _parse_toml
        case ".json":
            parser = _parse_json
        case ".yaml" | ".yml":
            parser = _parse_yaml
        case _:
            return
    yield from parser(path)


def _parse_toml(path: PathLike) -> typing.Generator[dict, None, None]:
    with path.open("rb") as toml_file:
        yield tomllib.load(toml_file)


def _parse_json(path: PathLike) -> typing.Generator[dict, None, None]:
    with path.open("rb") as json_file:
        yield json.load(json_file)


def _parse_yaml(path: PathLike) -> typing.Generator[dict, None, None]:
    with path.open("rb") as yaml_file:
        yield from yaml.safe_load_all(yaml_file)
