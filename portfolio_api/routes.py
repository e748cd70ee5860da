"""
HTTP routes for the portfolio API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from portfolio_api.auth import (
    AdminRoute,
    Identity,
    check_credentials,
    issue_token,
    require_admin,
)
from portfolio_api.config import Settings, get_settings
from portfolio_api.db import DbClient
from portfolio_api.dependencies import get_db_client
from portfolio_api.errors import InvalidCredentials, NotFoundError
from portfolio_api.schemas import (
    AboutSkillResponse,
    HealthResponse,
    LoginRequest,
    MessageCreate,
    MessageCreated,
    MessageResponse,
    MessagesDeleted,
    ProjectCreated,
    ProjectDetail,
    ProjectPayload,
    ProjectSummary,
    RatingCreate,
    RatingCreated,
    RatingSummaryResponse,
    SecureDataResponse,
    SkillCreate,
    SkillResponse,
    SkillSummary,
    StatusMessage,
    TokenResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter(route_class=AdminRoute)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, settings: Settings = Depends(get_settings)):
    try:
        identity = check_credentials(payload.username, payload.password, settings)
    except InvalidCredentials:
        logger.warning("Failed login attempt for %r", payload.username)
        raise
    logger.info("Login success: token issued to %s", identity.username)
    return TokenResponse(token=issue_token(identity, settings))


@admin_router.get("/secure-data", response_model=SecureDataResponse)
def secure_data(identity: Identity = Depends(require_admin)):
    return SecureDataResponse(
        message=f"Hello {identity.username}, this is protected data."
    )


# Projects


@router.get("/projects", response_model=list[ProjectSummary])
def list_projects(db: DbClient = Depends(get_db_client)):
    return [project.as_dict() for project in db.list_projects()]


@admin_router.get("/projects/{project_id}", response_model=ProjectDetail)
def get_project(
    project_id: int,
    _: Identity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    project = db.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project.as_dict(technologies_as="refs")


@admin_router.post("/projects", response_model=ProjectCreated, status_code=201)
def create_project(
    payload: ProjectPayload,
    _: Identity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    project_id = db.create_project(payload.project_fields(), payload.technologies)
    logger.info("Created project %s (%r)", project_id, payload.title)
    return ProjectCreated(message="Project created", id=project_id)


@admin_router.put("/projects/{project_id}", response_model=StatusMessage)
def update_project(
    project_id: int,
    payload: ProjectPayload,
    _: Identity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    fields = payload.project_fields()
    if not db.update_project(project_id, fields, payload.technologies):
        raise NotFoundError("Project not found")
    logger.info("Updated project %s", project_id)
    return StatusMessage(message="Project updated")


@admin_router.delete("/projects/{project_id}", response_model=StatusMessage)
def delete_project(
    project_id: int,
    _: Identity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    deleted = db.delete_project(project_id)
    logger.info("Delete project %s (existed=%s)", project_id, deleted)
    return StatusMessage(message="Project deleted")


# Skills


@router.get("/skills", response_model=list[SkillSummary])
def list_skills(db: DbClient = Depends(get_db_client)):
    return [
        SkillSummary(name=skill.name, category=skill.category)
        for skill in db.list_skills()
    ]


# Unauthenticated, like message and rating submission.
@router.post("/skills", response_model=SkillResponse, status_code=201)
def create_skill(payload: SkillCreate, db: DbClient = Depends(get_db_client)):
    skill = db.create_skill(payload.name, payload.category)
    return SkillResponse(id=skill.id, name=skill.name, category=skill.category)


@router.get("/about-skills", response_model=list[AboutSkillResponse])
def list_about_skills(db: DbClient = Depends(get_db_client)):
    return [
        AboutSkillResponse(
            id=item.id, type=item.type, skill_id=item.skill_id, name=item.name
        )
        for item in db.list_about_skills()
    ]


# Contact messages


@router.post("/messages", response_model=MessageCreated)
def send_message(payload: MessageCreate, db: DbClient = Depends(get_db_client)):
    record = db.save_message(payload.sender_name, payload.sender_email, payload.message)
    logger.info("Stored contact message %s from %s", record.id, payload.sender_email)
    return MessageCreated(message="Message sent", id=record.id)


@admin_router.get("/admin/messages", response_model=list[MessageResponse])
def list_messages(
    _: Identity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    return [record.as_dict() for record in db.list_messages()]


@admin_router.delete("/admin/messages", response_model=MessagesDeleted)
def delete_messages(
    _: Identity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    deleted = db.delete_all_messages()
    logger.info("Deleted %d contact messages", deleted)
    return MessagesDeleted(message="All messages deleted", deleted=deleted)


# Ratings


@router.post("/ratings", response_model=RatingCreated, status_code=201)
def rate_project(payload: RatingCreate, db: DbClient = Depends(get_db_client)):
    rating_id = db.add_rating(payload.project_id, payload.rating)
    return RatingCreated(message="Rating saved", id=rating_id)


@router.get("/ratings/{project_id}", response_model=RatingSummaryResponse)
def rating_summary(project_id: int, db: DbClient = Depends(get_db_client)):
    summary = db.rating_summary(project_id)
    return RatingSummaryResponse(count=summary.count, average=summary.average)


router.include_router(admin_router)
