# Services package.
#
# One class per domain aggregate, constructed once by the composition root
# (``app.container``) with its collaborators passed in:
#
#   auth_service      register / login / refresh
#   user_service      current user, avatar upload, public profiles
#   article_service   article CRUD, listing, feed, slugs and caching
#   comment_service   comment listing, creation and deletion
#   favorite_service  idempotent favorite toggles
#   follow_service    idempotent follow toggles and follower lists
#   tag_service       tag listing and per-tag article pages
#
# Every service method takes an AsyncSession as its first argument so that
# the router layer controls the transaction boundary via the ``get_db``
# dependency.  Cache invalidation and domain events are queued with
# ``app.database.after_commit`` and only run once that transaction commits.
