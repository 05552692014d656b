"""Logical units handed to consumers, and the failures attached to their rows."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator

from sheet_intake.errors import ConsumerRowFailure


class RowErrors:
    def __init__(self, errors: Iterable[BaseException | str | None] = ()) -> None:
        self._errors: list[BaseException] = []
        self.append(*errors)

    @classmethod
    def from_messages(cls, messages: Iterable[str]) -> "RowErrors":
        return cls(message for message in messages if message)

    def append(self, *errors: BaseException | str | None) -> None:
        for error in errors:
            if error is None:
                continue
            if isinstance(error, str):
                error = ConsumerRowFailure(error)
            self._errors.append(error)

    def messages(self) -> list[str]:
        """Error texts in order, duplicates removed."""
        seen: set[str] = set()
        result: list[str] = []
        for error in self._errors:
            text = str(error)
            if text in seen:
                continue
            seen.add(text)
            result.append(text)
        return result

    def combined(self) -> str | None:
        if not self._errors:
            return None
        return "; ".join(self.messages()).strip()

    def first(self) -> BaseException | None:
        return self._errors[0] if self._errors else None

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)


class Row:
    __slots__ = ("data", "form_index", "errors")

    def __init__(self, data: Any, form_index: int) -> None:
        self.data = data
        self.form_index = form_index
        self.errors = RowErrors()

    def set_errors(self, *errors: BaseException | str | None) -> None:
        self.errors.append(*errors)

    @property
    def is_err(self) -> bool:
        return bool(self.errors)

    def __repr__(self) -> str:
        return f"Row(form_index={self.form_index}, errors={self.errors.messages()!r})"


EachFn = Callable[[int, Row], bool]


class Rows:
    """One or more decoded rows that share a grouping key."""

    def __init__(self) -> None:
        self._rows: list[Row] = []

    def append(self, data: Any, form_index: int) -> Row:
        row = Row(data, form_index)
        self._rows.append(row)
        return row

    def first(self) -> Row | None:
        return self._rows[0] if self._rows else None

    def each(self, fn: EachFn) -> None:
        for i, row in enumerate(self._rows):
            if fn(i, row):
                break

    def each_reverse(self, fn: EachFn) -> None:
        for i in range(len(self._rows) - 1, -1, -1):
            if fn(i, self._rows[i]):
                break

    def set_rows_errors(self, *errors: BaseException | str | None) -> None:
        for row in self._rows:
            row.set_errors(*errors)

    @property
    def is_err(self) -> bool:
        return any(row.is_err for row in self._rows)

    def form_indexes(self) -> list[int]:
        return [row.form_index for row in self._rows]

    def records(self) -> list[Any]:
        return [row.data for row in self._rows]

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __reversed__(self) -> Iterator[Row]:
        return reversed(self._rows)

    def __getitem__(self, index: int) -> Row:
        return self._rows[index]
