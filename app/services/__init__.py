# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   category_service  - categories, slug derivation, post_count recount
#   post_service      - post CRUD, listing, search, view counting
#   comment_service   - append-only comments on a post
#   user_service      - principal directory and display summaries
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Failures are raised as ``app.exceptions`` types.
