"""
Study-level metadata attached to a container.

ExperimentDescriptor records what an experiment *is* (title, lab, PubMed
references, abstract) rather than what it measured. It has no shape and
takes no part in the container's dimensional invariants.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

__all__ = ['ExperimentDescriptor']


@dataclass
class ExperimentDescriptor:
    """
    Free-form description of an experiment.

    Attributes:
        title: Study title
        pubmed_ids: PubMed identifiers of associated publications
        lab: Laboratory or consortium that produced the data
        abstract: Study abstract
        name: Investigator name
        contact: Contact address
        url: Link to the study or data repository
        other: Anything else (free-form key/value pairs)

    Examples:
        >>> desc = ExperimentDescriptor(
        ...     title="Airway smooth muscle response to dexamethasone",
        ...     pubmed_ids=["24926665"],
        ...     lab="Himes lab",
        ... )
        >>> desc.is_empty()
        False
    """
    title: str = ""
    pubmed_ids: List[str] = field(default_factory=list)
    lab: str = ""
    abstract: str = ""
    name: str = ""
    contact: str = ""
    url: str = ""
    other: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.pubmed_ids, (str, int)):
            self.pubmed_ids = [str(self.pubmed_ids)]
        else:
            self.pubmed_ids = [str(p) for p in self.pubmed_ids]

    def is_empty(self) -> bool:
        """True if no field carries information."""
        return not any(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ExperimentDescriptor:
        """Build from a mapping; unknown keys are kept under ``other``."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        if extra:
            kwargs['other'] = {**kwargs.get('other', {}), **extra}
        return cls(**kwargs)

    def summary(self, width: Optional[int] = 72) -> str:
        """Short human-readable summary (title, lab, PubMed ids)."""
        title = self.title or "<untitled>"
        if width and len(title) > width:
            title = title[: width - 3] + "..."
        lines = [f"Experiment: {title}"]
        if self.lab:
            lines.append(f"  Lab: {self.lab}")
        if self.pubmed_ids:
            lines.append(f"  PubMed: {', '.join(self.pubmed_ids)}")
        return "\n".join(lines)
