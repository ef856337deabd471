"""
OData ``$filter`` construction for document library queries.

Every user-supplied value passes through :func:`literal`, which renders an
OData string literal with embedded single quotes doubled.
"""

from typing import Any, Dict, Iterable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

NAME_FIELD = "FileLeafRef"
FOLDER_FIELD = "FileDirRef"
TITLE_FIELD = "Title"
MODIFIED_FIELD = "Modified"
AUTHOR_FIELD = "Author/Title"
EDITOR_FIELD = "Editor/Title"

DEFAULT_ORDER_BY = "Modified desc"


def literal(value: Any) -> str:
    """Render ``value`` as a quoted OData string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def normalize_extension(extension: str) -> str:
    """``'.PDF '`` -> ``'PDF'``; only one leading dot is removed."""
    value = extension.strip()
    return value[1:] if value.startswith(".") else value


def substringof(value: Any, field: str) -> str:
    return f"substringof({literal(value)}, {field})"


def endswith(field: str, suffix: str) -> str:
    return f"endswith({field}, {literal(suffix)})"


def eq(field: str, value: Any) -> str:
    return f"{field} eq {literal(value)}"


def datetime_ge(field: str, value: Any) -> str:
    return f"{field} ge datetime{literal(value)}"


def datetime_le(field: str, value: Any) -> str:
    return f"{field} le datetime{literal(value)}"


def and_(clauses: Iterable[str]) -> str:
    return " and ".join(clause for clause in clauses if clause)


def or_(clauses: Iterable[str]) -> str:
    return " or ".join(clause for clause in clauses if clause)


def name_contains(name: str) -> str:
    return substringof(name, NAME_FIELD)


def file_type(extension: str) -> str:
    return endswith(NAME_FIELD, "." + normalize_extension(extension))


def file_types(extensions: Iterable[str]) -> str:
    return or_(file_type(ext) for ext in extensions)


def author_is(author: str) -> str:
    return eq(AUTHOR_FIELD, author)


def editor_is(editor: str) -> str:
    return eq(EDITOR_FIELD, editor)


def folder_contains(path: str) -> str:
    return substringof(path, FOLDER_FIELD)


def folder_is(path: str) -> str:
    return eq(FOLDER_FIELD, path)


def keyword(term: str) -> str:
    return f"({substringof(term, NAME_FIELD)} or {substringof(term, TITLE_FIELD)})"


def modified_between(start: Optional[str] = None, end: Optional[str] = None) -> str:
    clauses = []
    if start:
        clauses.append(datetime_ge(MODIFIED_FIELD, start))
    if end:
        clauses.append(datetime_le(MODIFIED_FIELD, end))
    return and_(clauses)


class FilterCriteria(BaseModel):
    """Optional search fields combined conjunctively into one filter."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    file_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("fileName", "file_name"))
    file_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("fileType", "file_type"))
    author: Optional[str] = None
    editor: Optional[str] = None
    folder_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("folderPath", "folder_path"))
    start_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("startDate", "start_date"))
    end_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("endDate", "end_date"))
    keyword: Optional[str] = None
    order_by: Optional[str] = Field(default=None, validation_alias=AliasChoices("orderBy", "orderby", "order_by"))

    def is_empty(self) -> bool:
        return not any(
            getattr(self, name)
            for name in ("file_name", "file_type", "author", "editor", "folder_path", "start_date", "end_date", "keyword")
        )

    def to_dict(self) -> Dict[str, Any]:
        """Camel-case view of the populated fields, echoed back by advanced search."""
        data = {
            "fileName": self.file_name,
            "fileType": self.file_type,
            "author": self.author,
            "editor": self.editor,
            "folderPath": self.folder_path,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "keyword": self.keyword,
            "orderBy": self.order_by,
        }
        return {key: value for key, value in data.items() if value is not None}


def build_filter(criteria: FilterCriteria) -> str:
    """Join one clause per populated criteria field with ``and``."""
    clauses: List[str] = []

    if criteria.file_name:
        clauses.append(name_contains(criteria.file_name))
    if criteria.file_type:
        clauses.append(file_type(criteria.file_type))
    if criteria.author:
        clauses.append(author_is(criteria.author))
    if criteria.editor:
        clauses.append(editor_is(criteria.editor))
    if criteria.folder_path:
        clauses.append(folder_contains(criteria.folder_path))
    if criteria.start_date:
        clauses.append(datetime_ge(MODIFIED_FIELD, criteria.start_date))
    if criteria.end_date:
        clauses.append(datetime_le(MODIFIED_FIELD, criteria.end_date))
    if criteria.keyword:
        clauses.append(keyword(criteria.keyword))

    return and_(clauses)
