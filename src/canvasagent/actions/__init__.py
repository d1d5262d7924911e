"""Built-in action kinds and the default registry."""

from ..agent.registry import ActionRegistry
from .builtin import MESSAGE_ACTION, THINK_ACTION, MessageAction, ThinkAction
from .comments import (
    ADD_REPLY_ACTION,
    CREATE_COMMENT_ACTION,
    GET_COMMENT_DETAILS_ACTION,
    LIST_MENTIONABLE_SHAPES_ACTION,
    READ_COMMENTS_ACTION,
    UPDATE_COMMENT_ACTION,
    AddReplyAction,
    CommentDocument,
    CommentFilters,
    CreateCommentAction,
    GetCommentDetailsAction,
    ListMentionableShapesAction,
    ReadCommentsAction,
    UpdateCommentAction,
)


def default_registry() -> ActionRegistry:
    """Registry with message, think and the comment actions (not frozen)."""
    return ActionRegistry(
        [
            MESSAGE_ACTION,
            THINK_ACTION,
            CREATE_COMMENT_ACTION,
            ADD_REPLY_ACTION,
            UPDATE_COMMENT_ACTION,
            READ_COMMENTS_ACTION,
            GET_COMMENT_DETAILS_ACTION,
            LIST_MENTIONABLE_SHAPES_ACTION,
        ]
    )


__all__ = [
    "ADD_REPLY_ACTION",
    "CREATE_COMMENT_ACTION",
    "GET_COMMENT_DETAILS_ACTION",
    "LIST_MENTIONABLE_SHAPES_ACTION",
    "MESSAGE_ACTION",
    "READ_COMMENTS_ACTION",
    "THINK_ACTION",
    "UPDATE_COMMENT_ACTION",
    "AddReplyAction",
    "CommentDocument",
    "CommentFilters",
    "CreateCommentAction",
    "GetCommentDetailsAction",
    "ListMentionableShapesAction",
    "MessageAction",
    "ReadCommentsAction",
    "ThinkAction",
    "UpdateCommentAction",
    "default_registry",
]
