"""
Metadata assembly - builds validated NFT metadata documents.

Assembly is pure: it performs no I/O and fails with InvalidMetadata before
anything is uploaded.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .exceptions import InvalidMetadata
from .models import (
    MAX_SELLER_FEE_BASIS_POINTS,
    NftAttribute,
    NftFile,
    NftMetadata,
    NftProperties,
)

AttributeLike = Union[NftAttribute, Tuple[str, Any], Dict[str, Any]]
FileLike = Union[NftFile, Tuple[str, str], Dict[str, Any]]

_ATTRIBUTE_VALUE_TYPES = (str, int, float, bool)


def _coerce_attribute(index: int, attribute: AttributeLike) -> NftAttribute:
    field = f"attributes[{index}]"
    if isinstance(attribute, NftAttribute):
        trait_type, value = attribute.trait_type, attribute.value
    elif isinstance(attribute, dict):
        trait_type, value = attribute.get("trait_type"), attribute.get("value")
    elif isinstance(attribute, (tuple, list)) and len(attribute) == 2:
        trait_type, value = attribute
    else:
        raise InvalidMetadata(field, f"{field} must be a (trait_type, value) pair")

    if not isinstance(trait_type, str) or not trait_type.strip():
        raise InvalidMetadata(f"{field}.trait_type", f"{field}.trait_type must be a non-empty string")
    if not isinstance(value, _ATTRIBUTE_VALUE_TYPES):
        raise InvalidMetadata(f"{field}.value", f"{field}.value must be a string, number or boolean")
    return NftAttribute(trait_type=trait_type, value=value)


def _coerce_file(index: int, entry: FileLike) -> NftFile:
    field = f"properties.files[{index}]"
    if isinstance(entry, NftFile):
        return entry
    if isinstance(entry, dict):
        uri, mime_type = entry.get("uri"), entry.get("type")
    elif isinstance(entry, (tuple, list)) and len(entry) == 2:
        uri, mime_type = entry
    else:
        raise InvalidMetadata(field, f"{field} must be a (uri, type) pair")

    if not isinstance(uri, str) or not uri:
        raise InvalidMetadata(f"{field}.uri")
    if not isinstance(mime_type, str) or not mime_type:
        raise InvalidMetadata(f"{field}.type")
    return NftFile(uri=uri, type=mime_type)


def _with_image_file(files: List[NftFile], image_uri: str, image_mime_type: str) -> List[NftFile]:
    matching = [f for f in files if f.uri == image_uri]
    if not matching:
        return [NftFile(uri=image_uri, type=image_mime_type)] + files
    if not any(f.type == image_mime_type for f in matching):
        raise InvalidMetadata(
            "properties.files",
            f"properties.files lists the image with type {matching[0].type!r}, "
            f"but it was uploaded as {image_mime_type!r}"
        )
    return files


def _check_text_fields(name: Any, symbol: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise InvalidMetadata("name", "name must not be empty")
    if not isinstance(symbol, str) or not symbol.strip():
        raise InvalidMetadata("symbol", "symbol must not be empty")


def check_metadata_fields(
    name: str,
    symbol: str,
    description: str = "",
    attributes: Optional[Iterable[AttributeLike]] = None,
    files: Optional[Sequence[FileLike]] = None,
    seller_fee_basis_points: Optional[int] = None,
) -> Tuple[List[NftAttribute], List[NftFile]]:
    """
    Check every field that does not depend on the uploaded image.

    Lets a pipeline reject a bad job before anything is uploaded.

    Returns:
        The coerced attributes and files

    Raises:
        InvalidMetadata: naming the first field that breaks an invariant
    """
    _check_text_fields(name, symbol)
    if not isinstance(description, str):
        raise InvalidMetadata("description")
    if seller_fee_basis_points is not None:
        if isinstance(seller_fee_basis_points, bool) or not isinstance(seller_fee_basis_points, int):
            raise InvalidMetadata("seller_fee_basis_points", "seller_fee_basis_points must be an integer")
        if not 0 <= seller_fee_basis_points <= MAX_SELLER_FEE_BASIS_POINTS:
            raise InvalidMetadata(
                "seller_fee_basis_points",
                f"seller_fee_basis_points must be in [0, {MAX_SELLER_FEE_BASIS_POINTS}]"
            )

    coerced_attributes = [_coerce_attribute(i, a) for i, a in enumerate(attributes or [])]
    coerced_files = [_coerce_file(i, f) for i, f in enumerate(files or [])]
    return coerced_attributes, coerced_files


def assemble_metadata(
    name: str,
    symbol: str,
    image_uri: str,
    image_mime_type: str,
    description: str = "",
    attributes: Optional[Iterable[AttributeLike]] = None,
    files: Optional[Sequence[FileLike]] = None,
    seller_fee_basis_points: Optional[int] = None,
    external_url: Optional[str] = None,
    category: Optional[str] = "image",
) -> NftMetadata:
    """
    Build an NftMetadata value referencing an uploaded image.

    The image is added to properties.files when the caller did not list it.

    Raises:
        InvalidMetadata: naming the first field that breaks an invariant
    """
    if not isinstance(image_uri, str) or not image_uri:
        _check_text_fields(name, symbol)
        raise InvalidMetadata("image", "image URI must not be empty")
    if not isinstance(image_mime_type, str) or not image_mime_type:
        _check_text_fields(name, symbol)
        raise InvalidMetadata("image_type", "the image MIME type is required")

    coerced_attributes, coerced_files = check_metadata_fields(
        name, symbol, description, attributes, files, seller_fee_basis_points
    )
    coerced_files = _with_image_file(coerced_files, image_uri, image_mime_type)

    return NftMetadata(
        name=name,
        symbol=symbol,
        description=description,
        image=image_uri,
        seller_fee_basis_points=seller_fee_basis_points,
        external_url=external_url,
        attributes=coerced_attributes,
        properties=NftProperties(files=coerced_files, category=category),
    )


def spec_fields(spec: Dict[str, Any], image_uri: Optional[str] = None) -> Dict[str, Any]:
    """
    Read a JSON metadata spec as accepted by the command line.

    The spec uses the document's own field names plus an optional
    "image_type". image_uri overrides the spec's "image". When the image is
    known but its type is not, the type is taken from the matching
    properties.files entry.

    Returns:
        The assemble_metadata keyword arguments, with "image" and
        "image_type" standing in for image_uri and image_mime_type

    Raises:
        InvalidMetadata: If the spec is not shaped like a metadata document
    """
    if not isinstance(spec, dict):
        raise InvalidMetadata("document", "metadata spec must be a JSON object")

    properties = spec.get("properties") or {}
    if not isinstance(properties, dict):
        raise InvalidMetadata("properties")
    files = properties.get("files") or []
    if not isinstance(files, list):
        raise InvalidMetadata("properties.files")
    attributes = spec.get("attributes") or []
    if not isinstance(attributes, list):
        raise InvalidMetadata("attributes")

    image = image_uri or spec.get("image")
    image_type = spec.get("image_type")
    if not image_type and image:
        for entry in files:
            if isinstance(entry, dict) and entry.get("uri") == image:
                image_type = entry.get("type")
                break

    return {
        "name": spec.get("name", ""),
        "symbol": spec.get("symbol", ""),
        "description": spec.get("description", ""),
        "attributes": attributes,
        "files": files,
        "seller_fee_basis_points": spec.get("seller_fee_basis_points"),
        "external_url": spec.get("external_url"),
        "category": properties.get("category", "image"),
        "image": image,
        "image_type": image_type,
    }


def assemble_from_spec(
    spec: Dict[str, Any],
    image_uri: Optional[str] = None,
    image_mime_type: Optional[str] = None,
) -> NftMetadata:
    """
    Build metadata from a JSON spec; see spec_fields for its layout.

    image_uri/image_mime_type override "image" and "image_type" from the spec.

    Raises:
        InvalidMetadata: If the spec is malformed or breaks an invariant
    """
    fields = spec_fields(spec, image_uri=image_uri)
    image = fields.pop("image")
    image_type = fields.pop("image_type")
    return assemble_metadata(
        image_uri=image or "",
        image_mime_type=image_mime_type or image_type or "",
        **fields,
    )
