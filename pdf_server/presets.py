"""
Preset PDF options.

A preset is a named bundle of page layout settings (format, orientation,
margins, background printing, header/footer display). The registry is built
once at startup and is read-only afterwards; per-request changes are made
on copies via RenderOptions.overlay().
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .config import PdfServerSettings, UNKNOWN_PRESET_POLICIES
from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PRESET_NAME = "DEFAULT"


class _PdfOptionsModel(BaseModel):
    """Frozen model accepting both snake_case and camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        coerce_numbers_to_str=True,
    )


class PdfMargin(_PdfOptionsModel):
    """Page margins as CSS lengths ("10mm", "0.5cm", "1in")."""

    top: Optional[str] = None
    bottom: Optional[str] = None
    left: Optional[str] = None
    right: Optional[str] = None

    @classmethod
    def uniform(cls, value: str) -> "PdfMargin":
        return cls(top=value, bottom=value, left=value, right=value)


class RenderOptions(_PdfOptionsModel):
    """
    Options passed to the browser's PDF renderer.

    Unset fields (None) fall back to the renderer's defaults and are
    omitted when serialized.

    Keys of browser PDF option files that have no counterpart here
    (omitBackground, timeout, path, ...) are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    format: Optional[str] = None
    landscape: Optional[bool] = None
    margin: Optional[PdfMargin] = None
    print_background: Optional[bool] = None
    display_header_footer: Optional[bool] = None
    header_template: Optional[str] = None
    footer_template: Optional[str] = None
    scale: Optional[float] = None
    prefer_css_page_size: Optional[bool] = Field(default=None, alias="preferCSSPageSize")
    page_ranges: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None

    @classmethod
    def ignored_keys(cls, data: Mapping[str, Any]) -> List[str]:
        """Keys of a raw options mapping that validation would drop."""
        known = set()
        for name, field in cls.model_fields.items():
            known.add(name)
            if field.alias:
                known.add(field.alias)
        return [key for key in data if key not in known]

    def overlay(self, **overrides: Any) -> "RenderOptions":
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=overrides)

    def to_playwright_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for Playwright's page.pdf()."""
        return self.model_dump(exclude_none=True)

    def to_public_dict(self) -> Dict[str, Any]:
        """camelCase representation used by the /pdf_options endpoint."""
        return self.model_dump(by_alias=True, exclude_none=True)


def builtin_presets(
    default_format: str = "A4",
    default_landscape: bool = False,
    default_margin: str = "0",
) -> Dict[str, RenderOptions]:
    """
    Build the built-in preset table.

    Only DEFAULT depends on configuration; the remaining presets are fixed.
    """
    margin = PdfMargin.uniform(default_margin)
    no_margin = PdfMargin.uniform("0mm")

    return {
        DEFAULT_PRESET_NAME: RenderOptions(
            format=default_format,
            landscape=default_landscape,
            margin=margin,
            print_background=True,
        ),
        "A4": RenderOptions(format="a4", margin=margin, print_background=True),
        "A3": RenderOptions(format="a3", margin=margin, print_background=True),
        "A4L": RenderOptions(format="a4", landscape=True, margin=margin, print_background=True),
        "A3L": RenderOptions(format="a3", landscape=True, margin=margin, print_background=True),
        "nomargin": RenderOptions(format="a4", landscape=False, margin=no_margin, print_background=True),
        "bottommargin": RenderOptions(
            format="a4",
            landscape=False,
            margin=PdfMargin(top="0mm", bottom="0.5cm", left="0mm", right="0mm"),
            print_background=True,
        ),
        "landscape": RenderOptions(format="a4", landscape=True, margin=no_margin, print_background=True),
        "A4headerfooter": RenderOptions(
            format="a4",
            margin=PdfMargin(top="40mm", bottom="30mm", left="0.5cm", right="0.5cm"),
            print_background=True,
            display_header_footer=True,
        ),
    }


class PresetRegistry:
    """
    Immutable table of preset name -> RenderOptions.

    Unknown names are handled per unknown_policy:
    - "fallback": resolve to the default preset (logged as a warning)
    - "reject": raise ValidationError (HTTP 400)
    """

    def __init__(
        self,
        presets: Mapping[str, Union[RenderOptions, Mapping[str, Any]]],
        default_name: str = DEFAULT_PRESET_NAME,
        unknown_policy: str = "fallback",
    ):
        if not presets:
            raise ValueError("Preset table is empty")
        if default_name not in presets:
            raise ValueError(f"Default preset '{default_name}' is not defined")
        if unknown_policy not in UNKNOWN_PRESET_POLICIES:
            raise ValueError(f"Unknown preset policy: {unknown_policy}")

        table = {}
        for name, options in presets.items():
            if isinstance(options, RenderOptions):
                table[name] = options
                continue
            try:
                table[name] = RenderOptions.model_validate(options)
            except PydanticValidationError as e:
                raise ValueError(f"Invalid options for preset '{name}': {e}") from e
            if isinstance(options, Mapping):
                ignored = RenderOptions.ignored_keys(options)
                if ignored:
                    logger.warning(f"Preset '{name}': ignoring unsupported options {ignored}")

        self._presets: Mapping[str, RenderOptions] = MappingProxyType(table)
        self._default_name = default_name
        self._unknown_policy = unknown_policy

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        default_name: str = DEFAULT_PRESET_NAME,
        unknown_policy: str = "fallback",
    ) -> "PresetRegistry":
        """Load presets from a JSON object of name -> options."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Preset file must contain a JSON object: {path}")

        logger.info(f"Loaded {len(data)} presets from {path}")
        return cls(data, default_name=default_name, unknown_policy=unknown_policy)

    @classmethod
    def from_settings(cls, settings: PdfServerSettings) -> "PresetRegistry":
        if settings.preset_pdf_options_file_path:
            return cls.from_file(
                settings.preset_pdf_options_file_path,
                default_name=settings.default_preset_pdf_options_name,
                unknown_policy=settings.unknown_preset_policy,
            )

        presets = builtin_presets(
            default_format=settings.default_pdf_option_format,
            default_landscape=settings.default_pdf_option_landscape,
            default_margin=settings.default_pdf_option_margin,
        )
        return cls(
            presets,
            default_name=settings.default_preset_pdf_options_name,
            unknown_policy=settings.unknown_preset_policy,
        )

    @property
    def default_name(self) -> str:
        return self._default_name

    @property
    def unknown_policy(self) -> str:
        return self._unknown_policy

    @property
    def names(self) -> list:
        return list(self._presets)

    def __contains__(self, name: object) -> bool:
        return name in self._presets

    def __len__(self) -> int:
        return len(self._presets)

    def resolve(self, name: Optional[str] = None) -> RenderOptions:
        """
        Resolve a preset name to its options.

        Args:
            name: Preset name, or None/"" for the default preset

        Returns:
            The stored (immutable) RenderOptions

        Raises:
            ValidationError: name is unknown and the policy is "reject"
        """
        if not name:
            return self._presets[self._default_name]

        options = self._presets.get(name)
        if options is not None:
            return options

        if self._unknown_policy == "reject":
            raise ValidationError(f"unknown pdf_option: {name}", pdf_option=name)

        logger.warning(f"Unknown pdf_option '{name}', using '{self._default_name}'")
        return self._presets[self._default_name]

    def list_all(self) -> Mapping[str, RenderOptions]:
        """Read-only view of every preset."""
        return self._presets
