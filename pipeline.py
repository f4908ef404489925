"""
Typed aggregation stage descriptors.

Pipelines are built as plain lists of these objects and rendered to raw
MongoDB stages with ``render`` right before execution, so builders can be
inspected and tested without a database.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple, Union


class Stage:
    def to_mongo(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class Match(Stage):
    filter: Mapping[str, Any]

    def to_mongo(self):
        return {"$match": dict(self.filter)}


@dataclass(frozen=True)
class Lookup(Stage):
    from_collection: str
    local_field: str
    foreign_field: str
    as_field: str

    def to_mongo(self):
        return {
            "$lookup": {
                "from": self.from_collection,
                "localField": self.local_field,
                "foreignField": self.foreign_field,
                "as": self.as_field,
            }
        }


@dataclass(frozen=True)
class Unwind(Stage):
    # Documents whose array is empty are dropped (no preserveNullAndEmptyArrays).
    path: str

    def to_mongo(self):
        return {"$unwind": "$" + self.path}


@dataclass(frozen=True)
class Project(Stage):
    fields: Mapping[str, Any]

    @classmethod
    def include(cls, *names: str) -> "Project":
        return cls({name: 1 for name in names})

    def to_mongo(self):
        return {"$project": dict(self.fields)}


@dataclass(frozen=True)
class Sort(Stage):
    keys: Tuple[Tuple[str, int], ...]

    def to_mongo(self):
        return {"$sort": {name: direction for name, direction in self.keys}}


@dataclass(frozen=True)
class Skip(Stage):
    count: int

    def to_mongo(self):
        return {"$skip": self.count}


@dataclass(frozen=True)
class Limit(Stage):
    count: int

    def to_mongo(self):
        return {"$limit": self.count}


@dataclass(frozen=True)
class Group(Stage):
    key: Any
    accumulators: Mapping[str, Any] = field(default_factory=dict)

    def to_mongo(self):
        return {"$group": {"_id": self.key, **dict(self.accumulators)}}


@dataclass(frozen=True)
class Count(Stage):
    output_field: str

    def to_mongo(self):
        return {"$count": self.output_field}


def render(stages: List[Union[Stage, Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [s.to_mongo() if isinstance(s, Stage) else dict(s) for s in stages]
