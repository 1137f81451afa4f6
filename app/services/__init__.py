# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   user_service      offset-paginated listing, CRUD, soft delete
#   profile_service   1:1 profile upsert
#   category_service  name/slug uniqueness, has-posts delete guard
#   post_service      DRAFT/PUBLISHED/ARCHIVED lifecycle, cursor listing
#   comment_service   depth-capped reply threads, cursor listing
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Failures are raised as ``app.errors.DomainError``
# subclasses; nothing here returns None for a missing record.
