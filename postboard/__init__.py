"""Postboard - social content backend with a like/dislike reaction ledger."""
