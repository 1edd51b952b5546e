import math


class Pagination:
    """Page maths over a backend pagination block"""

    def __init__(self, page=1, limit=10, total=0, pages=None):
        self.limit = max(int(limit or 10), 1)
        self.total = max(int(total or 0), 0)
        if pages is None:
            pages = math.ceil(self.total / self.limit)
        self.pages = max(int(pages), 0)
        self.page = max(int(page or 1), 1)

    @classmethod
    def from_api(cls, block, default_limit=10):
        """Accepts both {page, ...} and {current, ...} shapes"""
        block = block or {}
        page = block.get('page', block.get('current', 1))
        return cls(
            page=page,
            limit=block.get('limit') or default_limit,
            total=block.get('total', 0),
            pages=block.get('pages', block.get('totalPages')),
        )

    @property
    def has_prev(self):
        return self.page > 1

    @property
    def has_next(self):
        return self.page < self.pages

    @property
    def prev_page(self):
        return self.page - 1 if self.has_prev else None

    @property
    def next_page(self):
        return self.page + 1 if self.has_next else None

    @property
    def first_item(self):
        if self.total == 0:
            return 0
        return (self.page - 1) * self.limit + 1

    @property
    def last_item(self):
        return min(self.page * self.limit, self.total)

    def window(self, size=5):
        """Page numbers around the current page, None marking a gap"""
        if self.pages <= 0:
            return []
        half = size // 2
        start = max(self.page - half, 1)
        end = min(start + size - 1, self.pages)
        start = max(end - size + 1, 1)

        numbers = list(range(start, end + 1))
        if start > 1:
            numbers = [1] + ([None] if start > 2 else []) + numbers
        if end < self.pages:
            numbers = numbers + ([None] if end < self.pages - 1 else []) + [self.pages]
        return numbers


def page_args(args, default_limit=10, allowed=(10, 20, 50, 100)):
    """Parse page and limit from the query string"""
    try:
        page = int(args.get('page', 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    if limit not in allowed:
        limit = default_limit
    return max(page, 1), limit
