import math
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from userfeedback.db import (
    ALL_PAGES,
    AttachedFile,
    FeedbackRecord,
    FeedbackStore,
    FileRow,
    RelatedFiles,
    resolve_page_index,
)
from userfeedback.errors import ReadError, WriteError

BASE_URL = "https://feedback-bucket.oss-cn-beijing.aliyuncs.com"


def make_record(n: int = 0, files=()) -> FeedbackRecord:
    return FeedbackRecord(
        bug_description=f"crash #{n}",
        impacted_module="editor",
        reproduce_steps="open a project, press save",
        occurring_frequency=2,
        email="user@example.com",
        app_version="1.4.2",
        files=list(files),
    )


def make_file(name: str, batch: int = 1723700000123) -> AttachedFile:
    return AttachedFile(
        file_name=name, file_path=f"feedback/{batch}/{name}", file_size=1024
    )


class FeedbackStoreTests(unittest.TestCase):
    """
    Runs against in-memory SQLite through the same SQLAlchemy code path used
    for MySQL.
    """

    def setUp(self):
        self.store = FeedbackStore("sqlite+pysqlite:///:memory:", public_base_url=BASE_URL)

    def tearDown(self):
        self.store.close()

    def _file_row_count(self) -> int:
        with self.store.Session() as session:
            return session.execute(select(func.count()).select_from(FileRow)).scalar_one()

    def test_insert_and_query_nests_files(self):
        feedback_id = self.store.insert_feedback(
            make_record(files=[make_file("a.png"), make_file("log.txt")])
        )

        page = self.store.query_feedback(0, 10)
        self.assertEqual(page.total_size, 1)
        self.assertEqual(page.current_page_index, 0)
        self.assertEqual(len(page.records), 1)

        record = page.records[0]
        self.assertEqual(record.feedback_id, feedback_id)
        self.assertEqual(record.impacted_module, "editor")
        self.assertEqual(record.occurring_frequency, 2)
        self.assertIsNotNone(record.created_at)
        self.assertIsNotNone(record.created_at.tzinfo)
        self.assertEqual(
            [f.file_path for f in record.files],
            [
                f"{BASE_URL}/feedback/1723700000123/a.png",
                f"{BASE_URL}/feedback/1723700000123/log.txt",
            ],
        )
        self.assertEqual([f.file_size for f in record.files], [1024, 1024])

    def test_record_without_files_has_empty_list(self):
        self.store.insert_feedback(make_record())
        record = self.store.query_feedback().records[0]
        self.assertEqual(record.files, [])

    def test_ids_are_never_reused(self):
        first = self.store.insert_feedback(make_record(1))
        second = self.store.insert_feedback(make_record(2))
        self.store.delete_feedback([second])
        third = self.store.insert_feedback(make_record(3))
        self.assertGreater(second, first)
        self.assertGreater(third, second)

    def test_failed_file_insert_rolls_back_parent(self):
        broken = AttachedFile(file_name=None, file_path="feedback/1/x.png")
        with self.assertRaises(WriteError):
            self.store.insert_feedback(make_record(files=[make_file("ok.png"), broken]))

        self.assertEqual(self.store.query_feedback().total_size, 0)
        self.assertEqual(self._file_row_count(), 0)

    def test_pages_cover_every_record_once(self):
        ids = [self.store.insert_feedback(make_record(i)) for i in range(27)]
        for page_size in (10, 12):
            seen = []
            pages = math.ceil(len(ids) / page_size)
            for page_index in range(pages):
                page = self.store.query_feedback(page_index, page_size)
                self.assertEqual(page.total_size, len(ids))
                self.assertEqual(page.current_page_index, page_index)
                seen.extend(r.feedback_id for r in page.records)
            self.assertEqual(seen, ids)

    def test_files_do_not_truncate_page(self):
        many = [make_file(f"shot{i}.png") for i in range(15)]
        first = self.store.insert_feedback(make_record(0, files=many))
        for i in range(1, 12):
            self.store.insert_feedback(make_record(i, files=[make_file("a.png")]))

        page = self.store.query_feedback(0, 10)
        self.assertEqual(len(page.records), 10)
        self.assertEqual(page.records[0].feedback_id, first)
        self.assertEqual(len(page.records[0].files), 15)
        self.assertEqual(len({r.feedback_id for r in page.records}), 10)

    def test_page_size_has_floor(self):
        for i in range(12):
            self.store.insert_feedback(make_record(i))
        page = self.store.query_feedback(0, 3)
        self.assertEqual(len(page.records), 10)

    def test_out_of_range_page_is_clamped(self):
        for i in range(5):
            self.store.insert_feedback(make_record(i))
        page = self.store.query_feedback(1000, 10)
        self.assertEqual(page.current_page_index, 0)
        self.assertEqual(len(page.records), 5)

    def test_negative_page_is_clamped_to_last_page(self):
        for i in range(25):
            self.store.insert_feedback(make_record(i))
        page = self.store.query_feedback(-5, 10)
        self.assertEqual(page.current_page_index, 2)
        self.assertEqual(len(page.records), 5)

    def test_all_pages_returns_everything(self):
        ids = [self.store.insert_feedback(make_record(i)) for i in range(23)]
        page = self.store.query_feedback(ALL_PAGES, 10)
        self.assertEqual(page.current_page_index, ALL_PAGES)
        self.assertEqual([r.feedback_id for r in page.records], ids)

    def test_huge_page_size_returns_everything(self):
        ids = [self.store.insert_feedback(make_record(i)) for i in range(13)]
        page = self.store.query_feedback(0, 10**20)
        self.assertEqual(page.current_page_index, 0)
        self.assertEqual([r.feedback_id for r in page.records], ids)

        page = self.store.query_feedback(10**20, 10**20)
        self.assertEqual(page.current_page_index, 0)
        self.assertEqual(len(page.records), 13)

    def test_created_at_is_utc_insert_time(self):
        written = datetime(2024, 8, 15, 12, 30, 5)
        with patch("userfeedback.db._utcnow", return_value=written):
            self.store.insert_feedback(make_record())
        record = self.store.query_feedback().records[0]
        self.assertEqual(record.created_at, written.replace(tzinfo=timezone.utc))

    def test_empty_store(self):
        page = self.store.query_feedback(3, 10)
        self.assertEqual(page.total_size, 0)
        self.assertEqual(page.current_page_index, 0)
        self.assertEqual(page.records, [])

    def test_related_files_keeps_unknown_ids(self):
        feedback_id = self.store.insert_feedback(
            make_record(files=[make_file("a.png"), make_file("b.png")])
        )
        related = self.store.query_related_files([feedback_id, 99])
        self.assertEqual(
            related,
            [
                RelatedFiles(
                    feedback_id,
                    ["feedback/1723700000123/a.png", "feedback/1723700000123/b.png"],
                ),
                RelatedFiles(99, []),
            ],
        )

    def test_related_files_empty_input(self):
        with patch.object(self.store, "Session") as session_factory:
            self.assertEqual(self.store.query_related_files([]), [])
        session_factory.assert_not_called()

    def test_related_files_stops_at_first_failure(self):
        feedback_id = self.store.insert_feedback(make_record(files=[make_file("a.png")]))
        real_factory = self.store.Session

        def flaky_factory():
            session = real_factory()
            real_execute = session.execute
            calls = []

            def execute(*args, **kwargs):
                calls.append(args)
                if len(calls) > 1:
                    raise OperationalError("SELECT", {}, Exception("connection lost"))
                return real_execute(*args, **kwargs)

            session.execute = execute
            return session

        with patch.object(self.store, "Session", flaky_factory):
            related = self.store.query_related_files([feedback_id, 7, 8])

        self.assertEqual([r.feedback_id for r in related], [feedback_id, 7])
        self.assertEqual(related[0].file_paths, ["feedback/1723700000123/a.png"])
        self.assertEqual(related[1].file_paths, [])

    def test_delete_removes_record_and_files(self):
        keep = self.store.insert_feedback(make_record(1, files=[make_file("keep.png")]))
        drop = self.store.insert_feedback(
            make_record(2, files=[make_file("a.png"), make_file("b.png")])
        )

        self.store.delete_feedback([drop, 12345])

        page = self.store.query_feedback(ALL_PAGES)
        self.assertEqual([r.feedback_id for r in page.records], [keep])
        self.assertEqual(self._file_row_count(), 1)
        self.assertEqual(self.store.query_related_files([drop]), [RelatedFiles(drop, [])])

    def test_delete_empty_is_noop(self):
        self.store.insert_feedback(make_record())
        self.store.delete_feedback([])
        self.assertEqual(self.store.query_feedback().total_size, 1)

    def test_query_failure_raises_read_error(self):
        error = OperationalError("SELECT", {}, Exception("db down"))
        with patch.object(self.store, "Session", side_effect=error):
            with self.assertRaises(ReadError):
                self.store.query_feedback()

    def test_list_file_paths(self):
        self.store.insert_feedback(make_record(files=[make_file("a.png")]))
        self.store.insert_feedback(make_record(files=[make_file("b.png", batch=5)]))
        self.assertEqual(
            self.store.list_file_paths(),
            {"feedback/1723700000123/a.png", "feedback/5/b.png"},
        )


class ResolvePageIndexTests(unittest.TestCase):
    def test_clamping(self):
        self.assertEqual(resolve_page_index(0, 10, 0), 0)
        self.assertEqual(resolve_page_index(1, 10, 10), 0)
        self.assertEqual(resolve_page_index(1, 10, 11), 1)
        self.assertEqual(resolve_page_index(-2, 10, 31), 3)
        self.assertEqual(resolve_page_index(ALL_PAGES, 10, 31), ALL_PAGES)


if __name__ == "__main__":
    unittest.main()
