"""Transformation compiler.

Turns transformation options into the comma separated, slash chained
segment that sits in a delivery URL, e.g.::

    {"width": 100, "height": 100, "crop": "fill"}  ->  "c_fill,h_100,w_100"

Recognized keys are consumed from the options dict; whatever is left is
returned to the caller as display (HTML) attributes.
"""

import base64
import logging
import re
from typing import Any
from urllib.parse import quote, unquote

from .config import ConfigurationError
from .expressions import normalize_expression
from .models import MediaConfig, TransformationResult
from .utils import build_array, join_present, option_consume, present, to_param_string


logger = logging.getLogger(__name__)

DEFAULT_RESPONSIVE_WIDTH_TRANSFORMATION = {"width": "auto", "crop": "limit"}

# (option name, short code) pairs rendered without any processing
SIMPLE_PARAMS = [
    ("audio_codec", "ac"),
    ("audio_frequency", "af"),
    ("bit_rate", "br"),
    ("color_space", "cs"),
    ("default_image", "d"),
    ("delay", "dl"),
    ("density", "dn"),
    ("duration", "du"),
    ("end_offset", "eo"),
    ("fetch_format", "f"),
    ("gravity", "g"),
    ("page", "pg"),
    ("prefix", "p"),
    ("start_offset", "so"),
    ("streaming_profile", "sp"),
    ("video_codec", "vc"),
    ("video_sampling", "vs"),
]

LAYER_KEYWORD_PARAMS = [
    ("font_weight", "normal"),
    ("font_style", "normal"),
    ("text_decoration", "none"),
    ("text_align", None),
    ("stroke", "none"),
]

_QUALITY_RE = re.compile(
    r"^(\d+(\.\d+)?|\.\d+)(:\d+)?$|^auto(:[a-z_]+)?$|^jpegmini(:\d+)?$|^\$\w+$"
)
_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)")
_RANGE_VALUE_RE = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)([%pP])?$")
_RANGE_RE = re.compile(r"^([\d.]+[%pP]?)\.\.([\d.]+[%pP]?)$")
_TEXT_VARIABLE_RE = re.compile(r"\$\([a-zA-Z]\w*\)")


def _is_fraction(value: Any) -> bool:
    match = _LEADING_NUMBER_RE.match(to_param_string(value))
    return match is not None and float(match.group(0)) < 1


def _nested(options: dict[str, Any]) -> dict[str, Any]:
    # only the outermost segment gets the responsive width step
    nested = dict(options)
    nested.setdefault("responsive_width", False)
    return nested


def _rgb(color: Any) -> Any:
    if isinstance(color, str):
        return re.sub(r"^#", "rgb:", color)
    return color


def base64url_encode(text: str) -> str:
    """URL-safe base64 without padding."""
    encoded = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def process_radius(radius: Any) -> Any:
    """Render a radius given as a scalar, ``a:b`` string or list of corners.

    Raises:
        ConfigurationError: If a list has fewer than 1 or more than 4 values,
            or any corner is None
    """
    if radius is None or radius == "":
        return radius
    if not isinstance(radius, (list, tuple)):
        radius = to_param_string(radius).split(":")
    if len(radius) < 1 or len(radius) > 4:
        raise ConfigurationError("Radius array should contain between 1 and 4 values")
    if any(corner is None for corner in radius):
        raise ConfigurationError("Corner: Cannot be null")
    return ":".join(to_param_string(normalize_expression(corner)) for corner in radius)


def process_quality(quality: Any) -> Any:
    """Validate a quality value; numbers, ``N:chroma``, ``auto[:policy]`` pass.

    Raises:
        ConfigurationError: If the value has an unrecognized shape
    """
    if quality is None:
        return None
    if isinstance(quality, bool) or not _QUALITY_RE.match(to_param_string(quality)):
        raise ConfigurationError(f"Invalid quality value: {quality!r}")
    return normalize_expression(quality)


def process_custom_function(custom_function: Any) -> Any:
    """Render ``{function_type, source}`` as ``type:source``.

    Remote sources are base64url encoded. Missing fields render empty.
    """
    if not isinstance(custom_function, (dict, list, tuple)):
        return custom_function
    spec = custom_function if isinstance(custom_function, dict) else {}
    function_type = spec.get("function_type")
    source = spec.get("source")
    if function_type == "remote":
        source = base64url_encode(source or "")
    return ":".join("" if part is None else str(part) for part in (function_type, source))


def process_custom_pre_function(custom_pre_function: Any) -> str | None:
    result = process_custom_function(custom_pre_function)
    return f"pre:{result}" if isinstance(result, str) else None


def text_style(layer: dict[str, Any]) -> str:
    """Font style component of a text layer, e.g. ``Arial_18_bold``.

    Raises:
        ConfigurationError: If font size or family is missing
    """
    if layer.get("text_style"):
        return layer["text_style"]

    keywords = []
    for attr, default in LAYER_KEYWORD_PARAMS:
        value = layer.get(attr) or default
        if value != default:
            keywords.append(value)
    for attr, value in layer.items():
        if attr in ("letter_spacing", "line_spacing"):
            keywords.append(f"{attr}_{value}")
        elif attr == "font_hinting":
            keywords.append(f"hinting_{value}")
        elif attr == "font_antialiasing":
            keywords.append(f"antialias_{value}")

    if "font_size" not in layer and "font_family" not in layer and not keywords:
        return ""
    if not layer.get("font_size"):
        raise ConfigurationError("Must supply font_size for text in overlay/underlay")
    if not layer.get("font_family"):
        raise ConfigurationError("Must supply font_family for text in overlay/underlay")
    return join_present([layer["font_family"], layer["font_size"], *keywords], "_")


def _escape_text(text: str) -> str:
    source = unquote(text)
    pieces = []
    start = 0
    for match in _TEXT_VARIABLE_RE.finditer(source):
        pieces.append(quote(source[start:match.start()], safe=""))
        pieces.append(match.group(0))
        start = match.end()
    pieces.append(quote(source[start:], safe=""))
    return "".join(pieces)


def process_layer(layer: Any) -> Any:
    """Render an overlay or underlay.

    Accepts a ready string (``text:Arial_18:Hello``), a ``fetch:<url>``
    string, or a dict describing an uploaded resource, a fetched URL or a
    text layer.

    Raises:
        ConfigurationError: If a dict layer is missing what it needs
    """
    if isinstance(layer, str):
        if layer.startswith("fetch:") and len(layer) > 6:
            return f"fetch:{base64url_encode(layer[6:])}"
        return layer
    if not isinstance(layer, dict):
        return layer

    if layer.get("resource_type") == "fetch" or layer.get("url") is not None:
        return f"fetch:{base64url_encode(layer.get('url') or '')}"

    public_id = layer.get("public_id")
    resource_type = layer.get("resource_type") or "image"
    delivery_type = layer.get("type") or "upload"
    text = layer.get("text")
    style = None

    if public_id:
        public_id = public_id.replace("/", ":")
        if layer.get("format") is not None:
            public_id = f"{public_id}.{layer['format']}"

    if not text and resource_type != "text":
        if not public_id:
            raise ConfigurationError("Must supply public_id for resource_type layer_parameter")
        if resource_type == "subtitles":
            style = text_style(layer)
    else:
        resource_type = "text"
        delivery_type = None
        style = text_style(layer)
        if text:
            if bool(public_id) == bool(style):
                raise ConfigurationError(
                    "Must supply either style parameters or a public_id "
                    "when providing text parameter in a text overlay/underlay"
                )
            text = _escape_text(text)

    components = []
    if resource_type != "image":
        components.append(resource_type)
    if delivery_type not in ("upload", None):
        components.append(delivery_type)
    components.extend([style, public_id, text])
    return join_present(components, ":")


def process_if(if_value: Any) -> str | None:
    if not if_value:
        return None
    return f"if_{normalize_expression(if_value)}"


def split_range(value: Any) -> tuple[Any, Any]:
    """Split an offset given as ``"start..end"`` or ``[start, end]``."""
    if isinstance(value, (list, tuple)) and value:
        return value[0], value[-1]
    if isinstance(value, str):
        match = _RANGE_RE.match(value)
        if match:
            return match.group(1), match.group(2)
    return None, None


def norm_range_value(value: Any) -> Any:
    """Render an offset; percentages become ``Np``."""
    match = _RANGE_VALUE_RE.match(to_param_string(value))
    if match:
        modifier = "p" if match.group(2) else ""
        return f"{match.group(1)}{modifier}"
    return value


def process_video_params(value: Any) -> Any:
    if isinstance(value, dict):
        parts = [value.get("codec"), value.get("profile"), value.get("level")]
        return join_present(parts, ":")
    return value


def generate_transformation_string(options: Any, config: MediaConfig | None = None) -> str:
    """Compile transformation options into a URL segment.

    Recognized keys are removed from ``options``; the remaining keys are
    display attributes for the caller. Lists compile each entry and join
    them with ``/``; strings pass through.

    Raises:
        ConfigurationError: On invalid radius, quality or layer values
    """
    if isinstance(options, str):
        return options
    if isinstance(options, (list, tuple)):
        segments = (
            generate_transformation_string(dict(t) if isinstance(t, dict) else t, config)
            for t in options
        )
        return "/".join(s for s in segments if present(s))

    responsive_width = option_consume(
        options, "responsive_width", config.responsive_width if config else False
    )
    width = options.get("width")
    height = options.get("height")
    size = option_consume(options, "size")
    if size:
        width, height = str(size).split("x")
        options["width"], options["height"] = width, height

    has_layer = options.get("overlay") or options.get("underlay")
    crop = option_consume(options, "crop")
    angle = join_present(build_array(option_consume(options, "angle")), ".")

    # Anything that changes the output box makes width/height useless as HTML sizes.
    no_html_sizes = bool(has_layer or angle or present(crop) or responsive_width)
    if width is not None and (str(width).startswith("auto") or no_html_sizes or _is_fraction(width)):
        options.pop("width", None)
    if height is not None and (no_html_sizes or _is_fraction(height)):
        options.pop("height", None)

    background = _rgb(option_consume(options, "background"))
    color = _rgb(option_consume(options, "color"))

    base_transformations = build_array(option_consume(options, "transformation", []))
    named_transformation = None
    if any(isinstance(t, dict) for t in base_transformations):
        base_transformations = [
            generate_transformation_string(_nested(t), config)
            if isinstance(t, dict)
            else generate_transformation_string(_nested({"transformation": t}), config)
            for t in base_transformations
        ]
    else:
        named_transformation = join_present(base_transformations, ".")
        base_transformations = []

    effect = option_consume(options, "effect")
    if isinstance(effect, (list, tuple)):
        effect = join_present(effect, ":")

    border = option_consume(options, "border")
    if isinstance(border, dict):
        border_width = border.get("width") if border.get("width") is not None else 2
        border_color = _rgb(border.get("color") if border.get("color") is not None else "black")
        border = f"{border_width}px_solid_{border_color}"
    elif border is not None and re.fullmatch(r"\d+", str(border)):
        # a bare number is the HTML border attribute
        options["border"] = border
        border = None

    flags = join_present(build_array(option_consume(options, "flags")), ".")
    dpr = option_consume(options, "dpr", config.dpr if config else None)

    if options.get("offset") is not None:
        options["start_offset"], options["end_offset"] = split_range(option_consume(options, "offset"))

    custom_function = process_custom_function(option_consume(options, "custom_function"))
    custom_pre_function = process_custom_pre_function(option_consume(options, "custom_pre_function"))

    fps = option_consume(options, "fps")
    if isinstance(fps, (list, tuple)):
        fps = join_present(fps, "-")

    params = {
        "a": normalize_expression(angle),
        "ar": normalize_expression(option_consume(options, "aspect_ratio")),
        "b": background,
        "bo": border,
        "c": crop,
        "co": color,
        "dpr": normalize_expression(dpr),
        "e": normalize_expression(effect),
        "fl": flags,
        "fn": custom_function or custom_pre_function,
        "fps": fps,
        "h": normalize_expression(height),
        "ki": normalize_expression(option_consume(options, "keyframe_interval")),
        "l": process_layer(option_consume(options, "overlay")),
        "o": normalize_expression(option_consume(options, "opacity")),
        "q": process_quality(option_consume(options, "quality")),
        "r": process_radius(option_consume(options, "radius")),
        "t": named_transformation,
        "u": process_layer(option_consume(options, "underlay")),
        "w": normalize_expression(width),
        "x": normalize_expression(option_consume(options, "x")),
        "y": normalize_expression(option_consume(options, "y")),
        "z": normalize_expression(option_consume(options, "zoom")),
    }
    if_value = process_if(option_consume(options, "if"))

    for name, short in SIMPLE_PARAMS:
        value = options.pop(name, None)
        if value is not None:
            params[short] = value
    if params.get("vc") is not None:
        params["vc"] = process_video_params(params["vc"])
    for short in ("so", "eo", "du"):
        if params.get(short) is not None:
            params[short] = norm_range_value(params[short])

    variables_param = option_consume(options, "variables", [])
    user_variables = sorted(
        f"{key}_{to_param_string(normalize_expression(options.pop(key)))}"
        for key in [k for k in options if k.startswith("$")]
    )
    listed_variables = [
        f"{name}_{to_param_string(normalize_expression(value))}" for name, value in variables_param
    ]
    variables = ",".join(user_variables + listed_variables)

    rendered = ",".join(
        sorted(f"{key}_{to_param_string(value)}" for key, value in params.items() if present(value))
    )
    raw_transformation = option_consume(options, "raw_transformation")
    segment = join_present([if_value, variables, rendered, raw_transformation], ",")

    transformations = base_transformations + [segment]
    if responsive_width:
        responsive = (config.responsive_width_transformation if config else None) or DEFAULT_RESPONSIVE_WIDTH_TRANSFORMATION
        transformations.append(generate_transformation_string(_nested(responsive), config))
    if str(width).startswith("auto") or responsive_width:
        options["responsive"] = True
    if dpr == "auto":
        options["hidpi"] = True

    return "/".join(t for t in transformations if present(t))


def compile_transformation(options: dict[str, Any], config: MediaConfig | None = None) -> TransformationResult:
    """Compile options without touching the caller's dict.

    Returns:
        TransformationResult with the rendered string and leftover options
    """
    leftover = dict(options)
    transformation = generate_transformation_string(leftover, config)
    return TransformationResult(transformation=transformation, leftover=leftover)


def build_eager(transformations: Any, config: MediaConfig | None = None) -> str:
    """Join eager transformations with ``|``, each with an optional format."""
    rendered = []
    for transformation in build_array(transformations):
        options = dict(transformation) if isinstance(transformation, dict) else transformation
        value = generate_transformation_string(options, config)
        fmt = transformation.get("format") if isinstance(transformation, dict) else None
        rendered.append(value if fmt is None else f"{value}/{fmt}")
    return "|".join(rendered)
