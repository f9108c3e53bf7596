"""Resource tree model.

The template loader lives in :mod:`stacknag.tree.loader`; it depends on the
suppression store and is not re-exported here.
"""

from stacknag.tree.constructs import (
    Annotation,
    App,
    CfnResource,
    Construct,
    Stack,
    make_unique_id,
)

__all__ = [
    "Annotation",
    "App",
    "CfnResource",
    "Construct",
    "Stack",
    "make_unique_id",
]
