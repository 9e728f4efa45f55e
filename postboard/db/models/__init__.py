from postboard.db.models.comment import Comment
from postboard.db.models.media import Media
from postboard.db.models.post import Post
from postboard.db.models.relation import CommentRelation, PostRelation, RelationKind
from postboard.db.models.tag import Tag
from postboard.db.models.user import User

__all__ = ["Comment", "CommentRelation", "Media", "Post", "PostRelation", "RelationKind", "Tag", "User"]
