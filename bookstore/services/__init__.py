# Services package.
#
# Request-handler functions that consume a ServiceContext:
#
#   book_service  - check / add / reprice / remove / list-by-author for Book
#
# Handlers hold no state of their own; all data access goes through
# ``ctx.book_model``, which owns caching and transactions.
