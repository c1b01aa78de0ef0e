# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for a single domain aggregate:
#
#   user_service     — registration, login, current-user read/update
#   profile_service  — public profiles and the follow relation
#   article_service  — CRUD, listing/feed, favorites for Article
#   comment_service  — comments on an Article
#   tag_service      — tags in use (cached)
#   common           — shared serialisation and upsert helpers
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  The caller is passed explicitly as a ``User``
# (or None for anonymous reads); services raise ``app.exceptions``
# errors and never build HTTP responses.
