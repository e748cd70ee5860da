import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from portfolio_api.db import PostgresDbClient, average_rating
from portfolio_api.errors import (
    NotFoundError,
    StorageError,
    StorageTimeout,
    ValidationError,
)


class _CanceledQuery(Exception):
    sqlstate = "57014"


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")
        self.react = self.db.create_skill("React", "frontend")
        self.node = self.db.create_skill("Node.js", "backend")
        self.mongo = self.db.create_skill("MongoDB", "database")

    def test_create_and_get_project_keeps_link_order(self):
        project_id = self.db.create_project(
            {"title": "Shop", "description": "E-commerce", "live": "https://shop.test"},
            [self.mongo.id, self.react.id, self.mongo.id],
        )
        project = self.db.get_project(project_id)
        self.assertIsNotNone(project)
        self.assertEqual(project.title, "Shop")
        self.assertEqual(project.live, "https://shop.test")
        self.assertEqual(
            [skill.id for skill in project.technologies], [self.mongo.id, self.react.id]
        )

    def test_get_missing_project(self):
        self.assertIsNone(self.db.get_project(404))

    def test_list_projects_aggregates(self):
        first = self.db.create_project({"title": "A", "description": "a"}, [self.node.id])
        second = self.db.create_project({"title": "B", "description": "b"}, [])
        self.db.add_rating(first, 5)
        self.db.add_rating(first, 4)

        projects = {p.id: p for p in self.db.list_projects()}
        self.assertEqual(projects[first].technology_names(), ["Node.js"])
        self.assertEqual(projects[first].ratings.count, 2)
        self.assertEqual(projects[first].ratings.average, 4.5)
        self.assertEqual(projects[second].technologies, [])
        self.assertEqual(projects[second].as_dict()["technologies"], [])
        self.assertEqual(projects[second].ratings.average, 0)

    def test_update_replaces_links(self):
        project_id = self.db.create_project(
            {"title": "A", "description": "a"}, [self.react.id, self.node.id]
        )
        updated = self.db.update_project(
            project_id, {"title": "B", "description": "b"}, [self.mongo.id]
        )
        self.assertTrue(updated)
        project = self.db.get_project(project_id)
        self.assertEqual(project.title, "B")
        self.assertEqual([s.id for s in project.technologies], [self.mongo.id])

    def test_update_missing_project(self):
        self.assertFalse(
            self.db.update_project(404, {"title": "B", "description": "b"}, [])
        )

    def test_failed_update_leaves_project_untouched(self):
        project_id = self.db.create_project(
            {"title": "A", "description": "a"}, [self.react.id]
        )
        with self.assertRaises(ValidationError):
            self.db.update_project(
                project_id, {"title": "B", "description": "b"}, [self.node.id, 999]
            )
        project = self.db.get_project(project_id)
        self.assertEqual(project.title, "A")
        self.assertEqual([s.id for s in project.technologies], [self.react.id])

    def test_failed_link_insert_rolls_back_update(self):
        project_id = self.db.create_project(
            {"title": "A", "description": "a"}, [self.react.id]
        )
        failure = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(PostgresDbClient, "_insert_links", side_effect=failure):
            with self.assertRaises(StorageError):
                self.db.update_project(
                    project_id, {"title": "B", "description": "b"}, [self.node.id]
                )
        project = self.db.get_project(project_id)
        self.assertEqual(project.title, "A")
        self.assertEqual([s.id for s in project.technologies], [self.react.id])

    def test_delete_project_removes_dependents(self):
        project_id = self.db.create_project(
            {"title": "A", "description": "a"}, [self.react.id]
        )
        self.db.add_rating(project_id, 3)
        self.assertTrue(self.db.delete_project(project_id))
        self.assertIsNone(self.db.get_project(project_id))
        self.assertEqual(self.db.rating_summary(project_id).count, 0)
        self.assertFalse(self.db.delete_project(project_id))

    def test_rating_constraint_enforced_by_storage(self):
        project_id = self.db.create_project({"title": "A", "description": "a"}, [])
        with self.assertRaises(StorageError):
            self.db.add_rating(project_id, 7)
        self.assertEqual(self.db.rating_summary(project_id).count, 0)

    def test_rating_unknown_project(self):
        with self.assertRaises(NotFoundError):
            self.db.add_rating(404, 3)

    def test_skills_and_about_skills(self):
        about = self.db.create_about_skill("frontend", self.react.id)
        self.assertEqual(about.name, "React")
        self.assertEqual(
            [s.name for s in self.db.list_skills()], ["React", "Node.js", "MongoDB"]
        )
        listed = self.db.list_about_skills()
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0].skill_id, self.react.id)
        with self.assertRaises(ValidationError):
            self.db.create_about_skill("frontend", 999)

    def test_messages_newest_first_and_bulk_delete(self):
        self.db.save_message("Ada", "ada@example.com", "first")
        self.db.save_message("Bob", "bob@example.com", "second")
        self.assertEqual(
            [m.message for m in self.db.list_messages()], ["second", "first"]
        )
        self.assertEqual(self.db.delete_all_messages(), 2)
        self.assertEqual(self.db.list_messages(), [])

    def test_timeouts_are_translated(self):
        with self.assertRaises(StorageTimeout):
            with self.db._transaction():
                raise PoolTimeoutError("QueuePool limit reached")
        with self.assertRaises(StorageTimeout):
            with self.db._transaction():
                raise OperationalError("SELECT 1", {}, _CanceledQuery())

    def test_other_failures_are_storage_errors(self):
        with self.assertRaises(StorageError) as ctx:
            with self.db._transaction():
                raise OperationalError("SELECT 1", {}, Exception("server closed"))
        self.assertNotIsInstance(ctx.exception, StorageTimeout)

    def test_postgres_engine_options_bound_statements(self):
        options = PostgresDbClient._engine_options(
            "postgresql+psycopg://u:p@localhost/portfolio", 2.5
        )
        self.assertEqual(options["pool_timeout"], 2.5)
        self.assertEqual(
            options["connect_args"], {"options": "-c statement_timeout=2500"}
        )

    def test_postgres_ssl_requires_encryption(self):
        url = "postgresql+psycopg://u:p@db.example.com/portfolio"
        options = PostgresDbClient._engine_options(url, 5.0, ssl=True)
        self.assertEqual(options["connect_args"]["sslmode"], "require")
        self.assertNotIn(
            "sslmode", PostgresDbClient._engine_options(url, 5.0)["connect_args"]
        )


class AverageRatingTests(unittest.TestCase):
    def test_rounds_half_up(self):
        self.assertEqual(average_rating(4, 9), 2.3)
        self.assertEqual(average_rating(3, 10), 3.3)
        self.assertEqual(average_rating(0, 0), 0)


if __name__ == "__main__":
    unittest.main()
