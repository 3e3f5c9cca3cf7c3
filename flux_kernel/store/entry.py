"""Entry - a record in the in-memory store."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from flux_kernel.models.changes import Snapshot


class Entry(BaseModel):
    """
    A stored record: an id plus arbitrary fields.

    ``no_flux`` suppresses notifications for the operation at hand; it is
    never persisted or sent. The tracker keeps its snapshots in the private
    attributes, which are also left out of every dump.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    no_flux: bool = Field(default=False, exclude=True)

    _flux_before: Optional[Snapshot] = PrivateAttr(default=None)
    _flux_after: Optional[Snapshot] = PrivateAttr(default=None)
