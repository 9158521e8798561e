from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KnowledgeBaseSettings(BaseSettings):
    """Configuration for building and querying the knowledge base."""

    model_config = SettingsConfigDict(
        env_prefix="KB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_root: Path = Field(
        default_factory=lambda: Path.cwd(),
        description="Directory relative paths are resolved against.",
    )

    # Markdown sources with front matter
    corpus_dir: Path = Field(
        default_factory=lambda: Path("corpus"),
        description="Directory containing the *.md corpus.",
    )

    db_path: Path = Field(
        default_factory=lambda: Path("db") / "kb.sqlite",
        description="SQLite file holding the built store.",
    )

    search_limit: int = Field(default=8, ge=0, description="Default number of search hits.")
    list_limit: int = Field(default=20, ge=0, description="Default page size for document listings.")
    related_limit: int = Field(default=5, ge=0, description="Default number of related documents.")

    def resolve_paths(self) -> "KnowledgeBaseSettings":
        """Return a copy with all relative paths resolved against project_root."""

        def _resolve(path: Path) -> Path:
            if path.is_absolute():
                return path
            return self.project_root / path

        return self.model_copy(
            update={
                "corpus_dir": _resolve(self.corpus_dir),
                "db_path": _resolve(self.db_path),
            }
        )


def get_settings() -> KnowledgeBaseSettings:
    """Return settings with resolved paths."""
    return KnowledgeBaseSettings().resolve_paths()


__all__ = ["KnowledgeBaseSettings", "get_settings"]
