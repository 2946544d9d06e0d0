"""
Validation of explicit page requests against the dataroom's documents.

Pure function, no I/O.  Runs before any search call; a failed
validation short-circuits retrieval entirely.
"""

from __future__ import annotations

from dataroom_rag.schemas.retrieval import IndexedDocument, PageValidation


def validate_pages_against_documents(
    requested_pages: list[int],
    indexed_documents: list[IndexedDocument],
) -> PageValidation:
    """
    Check every requested page against the largest page count among
    ``indexed_documents``.  The error message names the valid range and
    the available documents so it can be shown to the user as-is.
    """
    if not requested_pages:
        return PageValidation(is_valid=True)

    if not indexed_documents:
        return PageValidation(
            is_valid=False,
            error_message="No documents available to validate pages against",
        )

    max_pages = max(doc.num_pages or 0 for doc in indexed_documents)
    if max_pages == 0:
        return PageValidation(
            is_valid=False,
            error_message="Documents have no page information available",
        )

    invalid = [page for page in requested_pages if page < 1 or page > max_pages]
    if not invalid:
        return PageValidation(is_valid=True, max_pages=max_pages)

    invalid_list = ", ".join(str(p) for p in invalid)
    names = ", ".join(doc.display_name for doc in indexed_documents)
    plural = "" if max_pages == 1 else "s"
    if len(invalid) == 1:
        subject = f"Page {invalid_list} doesn't"
    else:
        subject = f"Pages {invalid_list} don't"

    return PageValidation(
        is_valid=False,
        invalid_pages=invalid,
        max_pages=max_pages,
        error_message=(
            f"{subject} exist in your documents. "
            f"The available documents ({names}) have {max_pages} page{plural} "
            f"(pages 1-{max_pages}). Try asking about content within that range."
        ),
    )
