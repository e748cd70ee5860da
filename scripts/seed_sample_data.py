"""
Create the schema and load the sample projects and skills shown on a fresh site.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portfolio_api.config import get_settings
from portfolio_api.db import DbClient, PostgresDbClient

logger = logging.getLogger(__name__)

SAMPLE_SKILLS = [
    ("React", "frontend"),
    ("Node.js", "backend"),
    ("MongoDB", "database"),
    ("Express", "backend"),
    ("Firebase", "backend"),
    ("Material-UI", "frontend"),
]

SAMPLE_ABOUT_SKILLS = [
    ("frontend", "React"),
    ("frontend", "Material-UI"),
    ("backend", "Node.js"),
    ("backend", "Express"),
]

SAMPLE_PROJECTS = [
    {
        "title": "E-Commerce Website",
        "description": "A full-stack e-commerce platform built with React and Node.js",
        "github": "https://github.com/AllenAvramov/WebLand",
        "live": "https://rombarefoot.com",
        "image": "https://via.placeholder.com/300x200",
        "technologies": ["React", "Node.js", "MongoDB", "Express"],
    },
    {
        "title": "Task Management App",
        "description": "A task management application with real-time updates",
        "github": "https://github.com/yourusername/task-manager",
        "live": "https://task-manager-demo.com",
        "image": "https://via.placeholder.com/300x200",
        "technologies": ["React", "Firebase", "Material-UI"],
    },
]


def seed(db: DbClient) -> int:
    """Insert the sample rows into an empty database. Returns projects created."""
    if db.list_projects():
        logger.info("Projects already present; skipping seed")
        return 0

    skill_ids = {}
    existing = {skill.name: skill.id for skill in db.list_skills()}
    for name, category in SAMPLE_SKILLS:
        if name in existing:
            skill_ids[name] = existing[name]
        else:
            skill_ids[name] = db.create_skill(name, category).id

    for type_, name in SAMPLE_ABOUT_SKILLS:
        db.create_about_skill(type_, skill_ids[name])

    for sample in SAMPLE_PROJECTS:
        fields = {k: v for k, v in sample.items() if k != "technologies"}
        technology_ids = [skill_ids[name] for name in sample["technologies"]]
        project_id = db.create_project(fields, technology_ids)
        logger.info("Seeded project %s (%s)", project_id, sample["title"])
    return len(SAMPLE_PROJECTS)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed the portfolio database")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")
    settings = get_settings()
    database_url = args.database_url or settings.database_url
    if not database_url:
        logger.error("No database configured; pass --database-url or set DATABASE_URL")
        return 1

    db = PostgresDbClient(
        database_url,
        timeout_seconds=settings.storage_timeout_seconds,
        ssl=settings.database_ssl,
    )
    created = seed(db)
    logger.info("Seeded %d projects", created)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
