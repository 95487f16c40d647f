# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   article_service  CRUD, filtered lists and view counting for Article
#   comment_service  CRUD, moderation and reply trees for Comment
#   tag_service      CRUD for Tag
#   user_service     CRUD, authentication and role assignment for User
#   role_service     lookups and seeding for Role
#   slugs            slug derivation shared by articles and tags
#   pagination       COUNT + LIMIT/OFFSET pages for list endpoints
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Services raise ``ValidationError`` for invalid
# input and return None (or False for deletes) when the target row does
# not exist.
