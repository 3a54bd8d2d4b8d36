from .validators import (
    PageOrderError,
    compute_text_hash,
    count_words,
    ensure_contiguous_pages,
    generate_book_id,
)

__all__ = [
    "PageOrderError",
    "compute_text_hash",
    "count_words",
    "ensure_contiguous_pages",
    "generate_book_id",
]
