import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import fitz
import pytest

from protocolgen.errors import CompositionFailure
from protocolgen.models import Annotation, BlueprintDocument, Marker, MarkerGroup, ProjectMeta, ReportData, TaskSnapshot
from protocolgen.report import BlueprintEmbedder, DocumentComposer, generate_protocol_pdf
from protocolgen.report.embedder import FITZ_LOCK, PAGE_KIND_BLUEPRINT, PAGE_KIND_DIVIDER
from protocolgen.report.styles import PAGE_WIDTH


def base_pdf(pages=3) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), f"BASE {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def open_annotation(page=1, task_number=1):
    return Annotation(task_number=task_number, status="open", x=0.1, y=0.1, width=0.2, height=0.2, page=page)


def test_no_blueprints_leaves_document_untouched():
    base = base_pdf()
    result = BlueprintEmbedder().embed(base, [], 1)
    assert result.pdf_bytes == base
    assert result.page_count == 3
    assert result.pages == []


def test_divider_and_pages_are_inserted_after_cover(blueprint_pdf):
    blueprint = BlueprintDocument(
        name="Ground Floor",
        source_bytes=blueprint_pdf(page_sizes=[(800, 600), (400, 800)]),
        annotations=[open_annotation(page=1)],
    )

    result = BlueprintEmbedder().embed(base_pdf(3), [blueprint], 1)

    assert result.page_count == 3 + 1 + 2
    assert [(p.index, p.kind) for p in result.pages] == [
        (1, PAGE_KIND_DIVIDER),
        (2, PAGE_KIND_BLUEPRINT),
        (3, PAGE_KIND_BLUEPRINT),
    ]
    assert [p.source_page for p in result.blueprint_pages("Ground Floor")] == [1, 2]

    with fitz.open(stream=result.pdf_bytes, filetype="pdf") as doc:
        assert "BASE 1" in doc[0].get_text()
        assert "Blueprints" in doc[1].get_text()
        assert "PLAN 1" in doc[2].get_text()
        assert "PLAN 2" in doc[3].get_text()
        assert "BASE 2" in doc[4].get_text()
        assert doc[2].rect.width == pytest.approx(PAGE_WIDTH)
        assert doc[2].rect.height == pytest.approx(600 * PAGE_WIDTH / 800)
        assert doc[3].rect.height == pytest.approx(800 * PAGE_WIDTH / 400)


def test_single_open_annotation_draws_one_red_rectangle(blueprint_pdf):
    blueprint = BlueprintDocument(
        name="Ground Floor",
        source_bytes=blueprint_pdf(page_sizes=[(800, 600), (800, 600)]),
        annotations=[open_annotation(page=1)],
    )

    result = BlueprintEmbedder().embed(base_pdf(1), [blueprint], 1)

    first, second = result.blueprint_pages("Ground Floor")
    assert first.annotation_count == 1
    rect = first.overlay.rects[0]
    assert rect.colors.text == "#b91c1c"
    assert rect.badge_text == "1"
    assert second.annotation_count == 0


def test_geometry_past_last_page_is_ignored(blueprint_pdf):
    blueprint = BlueprintDocument(
        name="Roof",
        source_bytes=blueprint_pdf(page_sizes=[(800, 600)]),
        annotations=[open_annotation(page=1), open_annotation(page=4, task_number=2)],
        markers=[MarkerGroup(task_number=2, markers=[Marker(x=0.5, y=0.5, page=3)])],
    )

    result = BlueprintEmbedder().embed(base_pdf(1), [blueprint], 1)

    assert result.page_count == 1 + 1 + 1
    (page,) = result.blueprint_pages("Roof")
    assert page.annotation_count == 1
    assert page.marker_count == 0


def test_undecodable_blueprint_is_skipped_entirely(blueprint_pdf):
    broken = BlueprintDocument(name="Broken", source_bytes=b"%PDF-1.4 garbage", annotations=[open_annotation()])
    good = BlueprintDocument(
        name="Good",
        source_bytes=blueprint_pdf(page_sizes=[(800, 600), (800, 600)], label="GOOD"),
        annotations=[open_annotation(page=2)],
    )

    result = BlueprintEmbedder().embed(base_pdf(2), [broken, good], 1)

    assert result.skipped_blueprints == ["Broken"]
    assert result.embedded_blueprints == ["Good"]
    assert result.page_count == 2 + 1 + 2
    assert result.blueprint_pages("Broken") == []
    assert [p.index for p in result.blueprint_pages("Good")] == [2, 3]

    with fitz.open(stream=result.pdf_bytes, filetype="pdf") as doc:
        assert "GOOD 1" in doc[2].get_text()
        assert "GOOD 2" in doc[3].get_text()
        assert "BASE 2" in doc[4].get_text()


def test_empty_blueprint_bytes_are_skipped(blueprint_pdf):
    result = BlueprintEmbedder().embed(
        base_pdf(1),
        [BlueprintDocument(name="Empty", source_bytes=b""),
         BlueprintDocument(name="Plan", source_bytes=blueprint_pdf())],
        1,
    )
    assert result.skipped_blueprints == ["Empty"]
    assert result.page_count == 1 + 1 + 1


def test_insertion_index_past_end_appends(blueprint_pdf):
    blueprint = BlueprintDocument(name="Plan", source_bytes=blueprint_pdf())

    result = BlueprintEmbedder().embed(base_pdf(2), [blueprint], 10)

    assert [p.index for p in result.pages] == [2, 3]
    assert result.page_count == 4


def test_unreadable_base_document_fails():
    with pytest.raises(CompositionFailure):
        BlueprintEmbedder().embed(b"", [BlueprintDocument(name="Plan", source_bytes=b"")], 0)


def test_generation_is_structurally_idempotent(blueprint_pdf):
    data = ReportData(
        organization_name="Acme Construction",
        project=ProjectMeta(id="proj-1", organization_id="org-1", name="Riverside"),
        generated_at=datetime(2025, 3, 5, tzinfo=timezone.utc),
        requested_by="user-1",
        filter_summary="All tasks",
        tasks=[TaskSnapshot(id="t-1", task_number=1, title="Fix outlet", status="open")],
        blueprints=[BlueprintDocument(
            name="Ground Floor",
            source_bytes=blueprint_pdf(page_sizes=[(800, 600), (600, 800)]),
            annotations=[open_annotation(page=1), open_annotation(page=2, task_number=2)],
            markers=[MarkerGroup(task_number=1, markers=[Marker(x=0.3, y=0.3, page=2)])],
        )],
    )

    def layout(document):
        return [(p.index, p.kind, p.annotation_count, p.marker_count) for p in document.embedding.pages]

    first = generate_protocol_pdf(data)
    second = generate_protocol_pdf(data, DocumentComposer(), BlueprintEmbedder())

    assert first.page_count == second.page_count == first.base.page_count + 1 + 2
    assert layout(first) == layout(second)
    assert layout(first)[1:] == [(2, PAGE_KIND_BLUEPRINT, 1, 0), (3, PAGE_KIND_BLUEPRINT, 1, 1)]


def test_long_blueprint_list_gets_every_divider_page_recorded(blueprint_pdf):
    source = blueprint_pdf()
    blueprints = [BlueprintDocument(name=f"Level {i:02d}", source_bytes=source) for i in range(45)]

    result = BlueprintEmbedder().embed(base_pdf(3), blueprints, 1)

    assert result.page_count == 3 + 2 + 45
    assert [(p.index, p.kind) for p in result.pages[:3]] == [
        (1, PAGE_KIND_DIVIDER),
        (2, PAGE_KIND_DIVIDER),
        (3, PAGE_KIND_BLUEPRINT),
    ]
    assert result.blueprint_pages("Level 44")[0].index == 3 + 44
    with fitz.open(stream=result.pdf_bytes, filetype="pdf") as doc:
        assert "Blueprints (continued)" in doc[2].get_text()
        assert "PLAN 1" in doc[3].get_text()
        assert "BASE 2" in doc[3 + 45].get_text()


def test_embed_holds_the_fitz_lock(blueprint_pdf):
    base = base_pdf(2)
    blueprint = BlueprintDocument(name="Ground Floor", source_bytes=blueprint_pdf())
    finished = threading.Event()
    results = []

    def run():
        results.append(BlueprintEmbedder().embed(base, [blueprint], 1))
        finished.set()

    with FITZ_LOCK:
        worker = threading.Thread(target=run)
        worker.start()
        assert not finished.wait(0.2)
    worker.join(timeout=30)

    assert finished.is_set()
    assert results[0].page_count == 2 + 1 + 1


def test_concurrent_embeds_produce_the_same_layout(blueprint_pdf):
    base = base_pdf(3)
    blueprints = [
        BlueprintDocument(
            name="Ground Floor",
            source_bytes=blueprint_pdf(page_sizes=[(800, 600), (600, 800)]),
            annotations=[open_annotation(page=1), open_annotation(page=2, task_number=2)],
        ),
        BlueprintDocument(name="Roof", source_bytes=blueprint_pdf(label="ROOF")),
    ]

    def layout(_):
        result = BlueprintEmbedder().embed(base, blueprints, 1)
        return result.page_count, [(p.index, p.kind, p.blueprint_name, p.annotation_count) for p in result.pages]

    with ThreadPoolExecutor(max_workers=4) as executor:
        layouts = list(executor.map(layout, range(8)))

    assert all(entry == layouts[0] for entry in layouts)
    assert layouts[0][0] == 3 + 1 + 3
