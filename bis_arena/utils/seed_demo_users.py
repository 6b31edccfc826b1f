"""
Seed demo students with points and completed missions for live leaderboard demos.

Usage (from repo root):
    python -m bis_arena.utils.seed_demo_users --count 8 --password DemoUser123!
"""

import argparse
import uuid
from dataclasses import dataclass

from bis_arena.db import client as db_client
from bis_arena.db import database as db
from bis_arena.services.gamification import server as gamification
from bis_arena.utils import security, timing


@dataclass
class DemoStudent:
    username: str
    college: str
    age: int
    completed: tuple[str, ...]


MISSION_POINTS = {"task1": 100, "task2": 50, "task3": 75}

DEMO_STUDENTS = [
    DemoStudent("Alex Johnson", "IIT Delhi", 21, ("task1", "task2", "task3")),
    DemoStudent("Sarah Chen", "NIT Trichy", 20, ("task1", "task3")),
    DemoStudent("Mike Smith", "BITS Pilani", 22, ("task1", "task2")),
    DemoStudent("Emma Davis", "IIT Bombay", 19, ("task1",)),
    DemoStudent("James Wilson", "VIT Vellore", 21, ("task3",)),
    DemoStudent("Priya Sharma", "DTU", 20, ("task2",)),
    DemoStudent("Rahul Verma", "IIIT Hyderabad", 23, ()),
]


def _ensure_db() -> None:
    db_client.connect()
    db.create_indexes(db.connect_to_db())


def _email_for(username: str) -> str:
    return username.lower().replace(" ", ".") + "@demo.bisarena.in"


def _purge_existing(email: str) -> None:
    db.connect_to_db()["users"].delete_many({"email": email})


def _create_student(student: DemoStudent, password: str) -> dict:
    email = _email_for(student.username)
    _purge_existing(email)
    record = {
        "user_id": str(uuid.uuid4()),
        "username": student.username,
        "email": email,
        "password_hash": security.hash_password(password),
        "age": student.age,
        "college": student.college,
        "profile_pic": None,
        "points": sum(MISSION_POINTS[task_id] for task_id in student.completed),
        "completed_tasks": list(student.completed),
        "created_at": timing.now(),
    }
    db.insert(table_name="users", record=record)
    return record


def seed_demo_users(count: int, password: str) -> list[dict]:
    _ensure_db()
    return [_create_student(student, password) for student in DEMO_STUDENTS[:count]]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create demo BIS Arena students with points.")
    parser.add_argument("--count", type=int, default=len(DEMO_STUDENTS), help="Number of demo students to create/reset.")
    parser.add_argument("--password", default="DemoUser123!", help="Password stored for every demo student.")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    try:
        created = seed_demo_users(args.count, args.password)
    except Exception as exc:
        raise SystemExit(f"Failed to seed demo users: {exc}") from exc
    print(f"Created {len(created)} demo students (password: {args.password}).")
    for entry in gamification.compute_leaderboard():
        print(f"  #{entry['rank']:<2} {entry['username']:<15} {entry['points']}")
