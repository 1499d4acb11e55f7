"""
Render data: the caller-supplied Context and the render-time scope stack.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional

from ..expressions.values import UNDEFINED, normalize, to_json


class Context:
    """
    Caller data for a render: an ordered string-keyed mapping of values.

    Values are converted into the value model on insertion (tuples become
    lists, mappings become dicts), so unsupported types fail early.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "Context":
        context = cls()
        for key, value in mapping.items():
            context.insert(key, value)
        return context

    def insert(self, key: str, value: Any) -> None:
        self._data[key] = normalize(value)

    def extend(self, other: "Context") -> None:
        """Copies every entry of `other`, overwriting existing keys."""
        self._data.update(other._data)

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def contains_key(self, key: str) -> bool:
        return key in self._data

    def remove(self, key: str) -> Optional[Any]:
        return self._data.pop(key, None)

    def into_json(self) -> Dict[str, Any]:
        """Plain dict copy of the data."""
        return dict(self._data)

    def to_json_string(self) -> str:
        return to_json(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __repr__(self) -> str:
        return f"Context({self._data!r})"


class ScopeStack:
    """
    Stack of variable frames used during one render call.

    Frame 0 holds globals (set_global), frame 1 the template-local data
    seeded from the caller context; block, loop and macro frames follow.
    Lookups walk from the innermost frame outwards.
    """

    def __init__(self, globals_frame: Dict[str, Any], frames: Optional[List[Dict[str, Any]]] = None,
                 template_frame: Optional[Dict[str, Any]] = None):
        self.frames: List[Dict[str, Any]] = [globals_frame] + (frames or [])
        # Template-level frame of the render; set_global keeps it in sync
        self._template_frame = template_frame

    @classmethod
    def for_render(cls, context: Context) -> "ScopeStack":
        local = context.into_json()
        return cls({}, [local], template_frame=local)

    def isolated(self, frame: Dict[str, Any]) -> "ScopeStack":
        """New stack that shares the globals frame but none of the locals (macro calls)."""
        return ScopeStack(self.frames[0], [frame], template_frame=self._template_frame)

    def push(self, frame: Optional[Dict[str, Any]] = None) -> None:
        self.frames.append(frame if frame is not None else {})

    def pop(self) -> None:
        if len(self.frames) <= 1:
            raise RuntimeError("Cannot pop the globals frame")
        self.frames.pop()

    def lookup(self, name: str) -> Any:
        """Value bound to `name`, or UNDEFINED."""
        for frame in reversed(self.frames):
            if name in frame:
                return frame[name]
        return UNDEFINED

    def set_local(self, name: str, value: Any) -> None:
        self.frames[-1][name] = value

    def set_global(self, name: str, value: Any) -> None:
        """
        Binds in the globals frame.

        A template-level binding of the same name is updated too, otherwise
        it would keep shadowing the new global value.
        """
        self.frames[0][name] = value
        if self._template_frame is not None and name in self._template_frame:
            self._template_frame[name] = value

    @property
    def depth(self) -> int:
        return len(self.frames)


__all__ = ["Context", "ScopeStack"]
