"""
Tests for metadata assembly.
"""
import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from nftmint_sdk.exceptions import InvalidInput, InvalidMetadata
from nftmint_sdk.metadata import assemble_from_spec, assemble_metadata, check_metadata_fields, spec_fields
from nftmint_sdk.models import NftAttribute, NftFile, NftMetadata

IMAGE_URI = "ipfs://QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"


def _assemble(**overrides):
    kwargs = dict(name="X", symbol="X", image_uri=IMAGE_URI, image_mime_type="image/png")
    kwargs.update(overrides)
    return assemble_metadata(**kwargs)


def test_minimal_document():
    document = _assemble().to_document()

    assert document == {
        "name": "X",
        "symbol": "X",
        "description": "",
        "image": IMAGE_URI,
        "attributes": [],
        "properties": {"files": [{"uri": IMAGE_URI, "type": "image/png"}], "category": "image"},
    }


def test_full_document():
    metadata = _assemble(
        description="desc",
        attributes=[("background", "blue"), {"trait_type": "level", "value": 3},
                    NftAttribute(trait_type="rare", value=True)],
        seller_fee_basis_points=500,
        external_url="https://example.com/x",
    )
    document = metadata.to_document()

    assert document["seller_fee_basis_points"] == 500
    assert document["external_url"] == "https://example.com/x"
    assert document["attributes"] == [
        {"trait_type": "background", "value": "blue"},
        {"trait_type": "level", "value": 3},
        {"trait_type": "rare", "value": True},
    ]


def test_image_file_is_not_duplicated():
    metadata = _assemble(files=[{"uri": IMAGE_URI, "type": "image/png"}, ("ipfs://other", "video/mp4")])

    assert metadata.properties.files == [
        NftFile(uri=IMAGE_URI, type="image/png"),
        NftFile(uri="ipfs://other", type="video/mp4"),
    ]


def test_image_file_with_conflicting_type():
    with pytest.raises(InvalidMetadata) as exc_info:
        _assemble(files=[{"uri": IMAGE_URI, "type": "image/jpeg"}])
    assert exc_info.value.field == "properties.files"


@pytest.mark.parametrize("overrides, field", [
    ({"name": ""}, "name"),
    ({"name": "   "}, "name"),
    ({"symbol": ""}, "symbol"),
    ({"image_uri": ""}, "image"),
    ({"image_mime_type": ""}, "image_type"),
    ({"seller_fee_basis_points": 10001}, "seller_fee_basis_points"),
    ({"seller_fee_basis_points": True}, "seller_fee_basis_points"),
    ({"attributes": [("", 1)]}, "attributes[0].trait_type"),
    ({"attributes": [("a", 1), ("b", None)]}, "attributes[1].value"),
    ({"attributes": ["oops"]}, "attributes[0]"),
    ({"files": [{"uri": "", "type": "image/png"}]}, "properties.files[0].uri"),
])
def test_invalid_fields_are_named(overrides, field):
    with pytest.raises(InvalidMetadata) as exc_info:
        _assemble(**overrides)
    assert exc_info.value.field == field


def test_invalid_metadata_is_invalid_input():
    with pytest.raises(InvalidInput):
        _assemble(name="")


@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(st.integers().filter(lambda n: n < 0 or n > 10000))
def test_out_of_range_fees_are_rejected(fee):
    with pytest.raises(InvalidMetadata):
        _assemble(seller_fee_basis_points=fee)


@settings(max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(st.integers(min_value=0, max_value=10000))
def test_in_range_fees_are_kept(fee):
    assert _assemble(seller_fee_basis_points=fee).seller_fee_basis_points == fee


def test_assemble_from_spec_reads_type_from_files():
    spec = {
        "name": "X",
        "symbol": "X",
        "image": IMAGE_URI,
        "properties": {"files": [{"uri": IMAGE_URI, "type": "image/gif"}], "category": "image"},
    }

    metadata = assemble_from_spec(spec)

    assert metadata.properties.files == [NftFile(uri=IMAGE_URI, type="image/gif")]


def test_assemble_from_spec_overrides():
    spec = {"name": "X", "symbol": "X", "image": "ipfs://old", "image_type": "image/gif"}

    metadata = assemble_from_spec(spec, image_uri=IMAGE_URI, image_mime_type="image/png")

    assert metadata.image == IMAGE_URI
    assert metadata.properties.files[0].type == "image/png"


def test_assemble_from_spec_without_image_type():
    with pytest.raises(InvalidMetadata) as exc_info:
        assemble_from_spec({"name": "X", "symbol": "X", "image": IMAGE_URI})
    assert exc_info.value.field == "image_type"


def test_document_round_trips_through_model():
    document = _assemble(seller_fee_basis_points=250, attributes=[("a", 1.5)]).to_document()

    assert NftMetadata.from_document(document).to_document() == document


def test_from_document_names_the_bad_field():
    with pytest.raises(InvalidMetadata) as exc_info:
        NftMetadata.from_document({"name": "X", "symbol": "X"})
    assert exc_info.value.field == "image"


def test_check_metadata_fields_needs_no_image():
    attributes, files = check_metadata_fields(
        "X", "X", attributes=[("background", "blue")], files=[("ipfs://extra", "video/mp4")],
        seller_fee_basis_points=0,
    )

    assert attributes == [NftAttribute(trait_type="background", value="blue")]
    assert files == [NftFile(uri="ipfs://extra", type="video/mp4")]


@pytest.mark.parametrize("kwargs, field", [
    ({"name": ""}, "name"),
    ({"symbol": None}, "symbol"),
    ({"seller_fee_basis_points": 10001}, "seller_fee_basis_points"),
    ({"seller_fee_basis_points": "250"}, "seller_fee_basis_points"),
    ({"attributes": [("", 1)]}, "attributes[0].trait_type"),
    ({"files": [("ipfs://extra", "")]}, "properties.files[0].type"),
])
def test_check_metadata_fields_names_the_bad_field(kwargs, field):
    fields = dict(name="X", symbol="X")
    fields.update(kwargs)

    with pytest.raises(InvalidMetadata) as exc_info:
        check_metadata_fields(**fields)
    assert exc_info.value.field == field


def test_spec_fields_keeps_category_and_type():
    fields = spec_fields({
        "name": "X",
        "symbol": "X",
        "image": IMAGE_URI,
        "properties": {"category": "video", "files": [{"uri": IMAGE_URI, "type": "video/mp4"}]},
    })

    assert fields["category"] == "video"
    assert fields["image_type"] == "video/mp4"
    assert fields["seller_fee_basis_points"] is None


@pytest.mark.parametrize("spec, field", [
    ([], "document"),
    ({"properties": "x"}, "properties"),
    ({"properties": {"files": "x"}}, "properties.files"),
    ({"attributes": "none"}, "attributes"),
])
def test_spec_fields_rejects_misshapen_specs(spec, field):
    with pytest.raises(InvalidMetadata) as exc_info:
        spec_fields(spec)
    assert exc_info.value.field == field
