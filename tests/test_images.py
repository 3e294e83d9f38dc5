"""Tests for uploaded-image detection."""

import pytest

from import_fixers.images import extract_images, image_mime_type, original_path

from conftest import UPLOADS


@pytest.mark.parametrize(
    "tag",
    [
        f'<img class="alignnone wp-image-42" src="{UPLOADS}/2016/05/photo-300x200.jpg" alt="A photo">',
        f'<img src="{UPLOADS}/2016/05/photo-300x200.jpg" class="alignnone wp-image-42" alt="A photo">',
        f'<img alt="A photo" src="{UPLOADS}/2016/05/photo-300x200.jpg" class="alignnone wp-image-42">',
        f'<img alt="A photo" class="alignnone wp-image-42" width="300" src="{UPLOADS}/2016/05/photo-300x200.jpg" />',
    ],
)
def test_attribute_order_does_not_matter(tag):
    images = extract_images(f"<p>{tag}</p>", UPLOADS)
    assert len(images) == 1
    image = images[0]
    assert image.url == f"{UPLOADS}/2016/05/photo-300x200.jpg"
    assert image.size == "300x200"
    assert image.original_path == f"{UPLOADS}/2016/05/photo.jpg"
    assert image.attachment_id == 42
    assert image.alt_text == "A photo"


def test_full_size_image_is_its_own_original():
    images = extract_images(f'<img src="{UPLOADS}/2016/05/logo.PNG">', UPLOADS)
    assert len(images) == 1
    assert images[0].size == "full"
    assert images[0].original_path == images[0].url
    assert images[0].attachment_id is None
    assert images[0].alt_text == ""


def test_duplicates_are_merged_by_url():
    text = (
        f'<img src="{UPLOADS}/a.jpg" alt="first">'
        f'<img class="wp-image-3" src="{UPLOADS}/a.jpg" alt="second">'
        f'<img src="{UPLOADS}/b.jpeg">'
    )
    images = extract_images(text, UPLOADS)
    assert [image.url for image in images] == [f"{UPLOADS}/a.jpg", f"{UPLOADS}/b.jpeg"]
    assert images[0].alt_text == "first"


def test_ignores_foreign_and_unsupported_images():
    text = (
        '<img src="https://cdn.example.org/wp-content/uploads/a.jpg">'
        f'<img src="{UPLOADS}/anim.gif">'
        f'<img src="{UPLOADS}/doc.pdf">'
        f'<img src="">'
    )
    assert extract_images(text, UPLOADS) == []


def test_no_images_or_no_base():
    assert extract_images("no markup at all", UPLOADS) == []
    assert extract_images(f'<img src="{UPLOADS}/a.jpg">', "") == []


def test_original_path():
    assert original_path(f"{UPLOADS}/x/café-1024x768.jpeg") == f"{UPLOADS}/x/café.jpeg"
    assert original_path(f"{UPLOADS}/x/2016-10x10-notes.jpg") == f"{UPLOADS}/x/2016-10x10-notes.jpg"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("http://example.com/image.jpg", "image/jpeg"),
        ("http://example.com/image.JPEG", "image/jpeg"),
        ("http://example.com/image.png?ver=2", "image/png"),
        ("http://example.com/image.gif", "image/gif"),
        ("http://example.com/some/thing", None),
        ("http://example.com/file.pdf", None),
        ("http://example.com/", None),
    ],
)
def test_image_mime_type(url, expected):
    assert image_mime_type(url) == expected
