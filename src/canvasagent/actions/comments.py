"""Comment action kinds applied to a comment-capable document."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from ..domain.actions import ActionContext, ActionDefinition, ActionInfo
from ..logging import log_event, summarize_text

AI_AUTHOR = "AI"
REPLY_PREVIEW_CHARS = 50
SHAPE_NAME_CHARS = 30

CommentStatus = Literal["open", "resolved"]


class CommentDocument(Protocol):
    """Document operations the comment actions need.

    Shapes and comments are looked up by id; lookups return None when the
    target no longer exists.
    """

    def get_shape(self, shape_id: str) -> Optional[Any]:
        """Return an object with ``x``/``y`` attributes, or None."""
        ...

    def get_comment(self, comment_id: str) -> Optional[Any]:
        """Return an object with a ``bound_shape_id`` attribute, or None."""
        ...

    def create_comment(
        self,
        position: tuple[float, float],
        author: str,
        *,
        bound_shape_id: Optional[str] = None,
        offset: Optional[tuple[float, float]] = None,
    ) -> str: ...

    def add_reply(self, comment_id: str, reply: dict[str, Any]) -> str: ...

    def set_comment_status(self, comment_id: str, status: str) -> None: ...

    def bind_comment(self, comment_id: str, shape_id: str) -> None: ...

    def unbind_comment(self, comment_id: str) -> None: ...

    def move_comment(self, comment_id: str, x: float, y: float) -> None: ...

    def list_comments(self) -> list[Any]:
        """Every comment on the page.

        Comments carry ``id``, ``author``, ``status``, ``position`` and
        ``bound_shape_id``, plus optional ``replies`` (reply dicts as passed
        to ``add_reply``), ``created_at`` and ``last_modified``.
        """
        ...

    def list_shapes(self) -> list[Any]:
        """Every shape on the page, with ``id``, ``type`` and optional ``text``."""
        ...


class Position(BaseModel):
    x: float
    y: float


class CreateCommentAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["create_comment"]
    position: Position
    bound_shape_id: Optional[str] = Field(default=None, alias="boundShapeId")


class Mention(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["shape", "user", "agent"]
    id: str
    display_name: str = Field(alias="displayName")


class Reply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    author: str
    message: str
    parent_reply_id: Optional[str] = Field(default=None, alias="parentReplyId")
    mentions: list[Mention] = Field(default_factory=list)


class AddReplyAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["add_reply"]
    comment_id: str = Field(alias="commentId")
    reply: Reply


class CommentUpdates(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[CommentStatus] = None
    # Explicit null unbinds; an absent field leaves the binding alone.
    bound_shape_id: Optional[str] = Field(default=None, alias="boundShapeId")
    position: Optional[Position] = None


class UpdateCommentAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["update_comment"]
    comment_id: str = Field(alias="commentId")
    updates: CommentUpdates


class CommentFilters(BaseModel):
    """Conditions a comment must all meet to be listed by ``read_comments``."""

    model_config = ConfigDict(populate_by_name=True)

    status: Optional[CommentStatus] = None
    bound_shape_id: Optional[str] = Field(default=None, alias="boundShapeId")
    since: Optional[float] = None
    modified_since: Optional[float] = Field(default=None, alias="modifiedSince")
    author_id: Optional[str] = Field(default=None, alias="authorId")
    mention_id: Optional[str] = Field(default=None, alias="mentionId")

    def matches(self, comment: Any) -> bool:
        replies = _replies(comment)
        if self.status and comment.status != self.status:
            return False
        if self.bound_shape_id and getattr(comment, "bound_shape_id", None) != self.bound_shape_id:
            return False
        created_at = getattr(comment, "created_at", None) or 0
        if self.since is not None and created_at < self.since:
            return False
        last_modified = getattr(comment, "last_modified", None) or 0
        if self.modified_since is not None and last_modified < self.modified_since:
            return False
        if self.author_id and comment.author != self.author_id:
            if not any(reply.get("author") == self.author_id for reply in replies):
                return False
        if self.mention_id:
            mentioned = (mention.get("id") for reply in replies for mention in reply.get("mentions") or ())
            if self.mention_id not in mentioned:
                return False
        return True


class ReadCommentsAction(BaseModel):
    kind: Literal["read_comments"]
    filters: Optional[CommentFilters] = None


class GetCommentDetailsAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["get_comment_details"]
    comment_ids: list[str] = Field(alias="commentIds")


class ListMentionableShapesAction(BaseModel):
    kind: Literal["list_mentionable_shapes"]


def _skip(kind: str, reason: str, target: str) -> None:
    log_event(
        "action_skipped",
        level=logging.WARNING,
        action_kind=kind,
        reason=reason,
        target=target,
    )


def _document(context: ActionContext) -> Optional[CommentDocument]:
    return context.document


def apply_create_comment(action: CreateCommentAction, context: ActionContext) -> Optional[dict[str, Any]]:
    document = _document(context)
    if document is None:
        _skip(action.kind, "no document", "")
        return None

    position = (action.position.x, action.position.y)
    bound_shape_id = None
    offset = None
    if action.bound_shape_id:
        shape = document.get_shape(action.bound_shape_id)
        if shape is None:
            # Still create the comment, just unbound.
            _skip(action.kind, "bound shape not found", action.bound_shape_id)
        else:
            bound_shape_id = action.bound_shape_id
            offset = (position[0] - shape.x, position[1] - shape.y)

    comment_id = document.create_comment(
        position, AI_AUTHOR, bound_shape_id=bound_shape_id, offset=offset
    )
    return {"comment_id": comment_id, "bound_shape_id": bound_shape_id}


def apply_add_reply(action: AddReplyAction, context: ActionContext) -> Optional[dict[str, Any]]:
    document = _document(context)
    if document is None or document.get_comment(action.comment_id) is None:
        _skip(action.kind, "comment not found", action.comment_id)
        return None

    reply = action.reply.model_dump(mode="json", by_alias=True, exclude_none=True)
    reply_id = document.add_reply(action.comment_id, reply)
    return {"comment_id": action.comment_id, "reply_id": reply_id}


def apply_update_comment(action: UpdateCommentAction, context: ActionContext) -> Optional[dict[str, Any]]:
    document = _document(context)
    comment = document.get_comment(action.comment_id) if document is not None else None
    if comment is None:
        _skip(action.kind, "comment not found", action.comment_id)
        return None

    updates = action.updates
    changed: dict[str, Any] = {}

    if updates.status:
        document.set_comment_status(action.comment_id, updates.status)
        changed["status"] = updates.status

    if "bound_shape_id" in updates.model_fields_set:
        if updates.bound_shape_id is None:
            document.unbind_comment(action.comment_id)
            changed["bound_shape_id"] = None
        elif document.get_shape(updates.bound_shape_id) is not None:
            document.bind_comment(action.comment_id, updates.bound_shape_id)
            changed["bound_shape_id"] = updates.bound_shape_id
        else:
            _skip(action.kind, "bound shape not found", updates.bound_shape_id)

    # Bound comments follow their shape; only free comments move.
    if updates.position is not None and not getattr(comment, "bound_shape_id", None):
        document.move_comment(action.comment_id, updates.position.x, updates.position.y)
        changed["position"] = {"x": updates.position.x, "y": updates.position.y}

    return {"comment_id": action.comment_id, "changed": changed}


def _replies(comment: Any) -> list[dict[str, Any]]:
    return list(getattr(comment, "replies", None) or [])


def _report(kind: str, context: ActionContext, text: str) -> bool:
    if context.schedule is None:
        _skip(kind, "no scheduler", "")
        return False
    context.schedule(text)
    return True


def apply_read_comments(action: ReadCommentsAction, context: ActionContext) -> Optional[dict[str, Any]]:
    document = _document(context)
    if document is None:
        _skip(action.kind, "no document", "")
        return None

    comments = document.list_comments()
    if action.filters is not None:
        comments = [comment for comment in comments if action.filters.matches(comment)]

    summaries = []
    for comment in comments:
        x, y = comment.position
        summaries.append(
            {
                "id": comment.id,
                "author": comment.author,
                "status": comment.status,
                "replyCount": len(_replies(comment)),
                "boundShapeId": getattr(comment, "bound_shape_id", None),
                "position": {"x": round(x), "y": round(y)},
            }
        )

    text = f"Found {len(summaries)} comment(s):\n{json.dumps(summaries, indent=2)}"
    if not _report(action.kind, context, text):
        return None
    return {"comment_ids": [summary["id"] for summary in summaries]}


def _comment_details(document: CommentDocument, comment_id: str, comment: Any) -> dict[str, Any]:
    x, y = comment.position
    detail: dict[str, Any] = {
        "id": comment_id,
        "position": {"x": x, "y": y},
        "author": comment.author,
        "status": comment.status,
        "createdAt": getattr(comment, "created_at", None),
        "lastModified": getattr(comment, "last_modified", None),
        "replies": [
            {
                "id": reply.get("id"),
                "author": reply.get("author"),
                "message": reply.get("message"),
                "timestamp": reply.get("timestamp"),
                "mentions": [
                    {
                        "type": mention.get("type"),
                        "id": mention.get("id"),
                        "displayName": mention.get("displayName"),
                    }
                    for mention in reply.get("mentions") or ()
                ],
            }
            for reply in _replies(comment)
        ],
    }
    bound_shape_id = getattr(comment, "bound_shape_id", None)
    if bound_shape_id:
        detail["boundShapeId"] = bound_shape_id
        shape = document.get_shape(bound_shape_id)
        if shape is not None:
            detail["boundShapeType"] = getattr(shape, "type", None)
    return detail


def apply_get_comment_details(
    action: GetCommentDetailsAction, context: ActionContext
) -> Optional[dict[str, Any]]:
    document = _document(context)
    if document is None:
        _skip(action.kind, "no document", "")
        return None

    details = []
    for comment_id in action.comment_ids:
        comment = document.get_comment(comment_id)
        if comment is None:
            _skip(action.kind, "comment not found", comment_id)
            continue
        details.append(_comment_details(document, comment_id, comment))

    text = f"Comment details for {len(details)} comment(s):\n{json.dumps(details, indent=2)}"
    if not _report(action.kind, context, text):
        return None
    return {"comment_ids": [detail["id"] for detail in details]}


def apply_list_mentionable_shapes(
    action: ListMentionableShapesAction, context: ActionContext
) -> Optional[dict[str, Any]]:
    document = _document(context)
    if document is None:
        _skip(action.kind, "no document", "")
        return None

    shapes = []
    for shape in document.list_shapes():
        if shape.type == "comment":
            continue
        text = getattr(shape, "text", None)
        display_name = summarize_text(text, SHAPE_NAME_CHARS) if text else shape.type
        shapes.append({"id": shape.id, "displayName": display_name, "type": shape.type})

    text = f"Found {len(shapes)} mentionable shape(s):\n{json.dumps(shapes, indent=2)}"
    if not _report(action.kind, context, text):
        return None
    return {"count": len(shapes)}


def _describe_reply(action: AddReplyAction) -> ActionInfo:
    preview = summarize_text(action.reply.message, REPLY_PREVIEW_CHARS)
    return ActionInfo(icon="message-circle", description=f"Adding reply: {preview}")


CREATE_COMMENT_ACTION = ActionDefinition(
    kind="create_comment",
    validator=CreateCommentAction,
    apply=apply_create_comment,
    describe=lambda action: ActionInfo(icon="message-circle", description="Creating comment"),
)

ADD_REPLY_ACTION = ActionDefinition(
    kind="add_reply",
    validator=AddReplyAction,
    apply=apply_add_reply,
    describe=_describe_reply,
)

UPDATE_COMMENT_ACTION = ActionDefinition(
    kind="update_comment",
    validator=UpdateCommentAction,
    apply=apply_update_comment,
    describe=lambda action: ActionInfo(icon="message-circle", description="Updating comment"),
)

# Read actions report back through a scheduled follow-up instead of history.
READ_COMMENTS_ACTION = ActionDefinition(
    kind="read_comments",
    validator=ReadCommentsAction,
    apply=apply_read_comments,
    describe=lambda action: ActionInfo(icon="message-circle", description="Reading comments"),
    records_history=False,
)

GET_COMMENT_DETAILS_ACTION = ActionDefinition(
    kind="get_comment_details",
    validator=GetCommentDetailsAction,
    apply=apply_get_comment_details,
    describe=lambda action: ActionInfo(
        icon="message-circle",
        description=f"Getting details for {len(action.comment_ids)} comment(s)",
    ),
    records_history=False,
)

LIST_MENTIONABLE_SHAPES_ACTION = ActionDefinition(
    kind="list_mentionable_shapes",
    validator=ListMentionableShapesAction,
    apply=apply_list_mentionable_shapes,
    describe=lambda action: ActionInfo(icon="list", description="Listing mentionable shapes"),
    records_history=False,
)
