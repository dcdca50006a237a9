"""Seed sample coding problems and open one test session per problem.

    python -m assessment.seed [--drop]
"""
import argparse
import uuid

from .database import sync_database
from .models import Problem, SessionStatus, TestSession
from .store import to_document


SAMPLE_PROBLEMS = [
    Problem(
        title="Two Sum",
        description=(
            "Given an array of integers nums and an integer target, return indices of the "
            "two numbers such that they add up to target.\n\n"
            "Example:\nInput: nums = [2,7,11,15], target = 9\nOutput: [0,1]"
        ),
        starter_code="function twoSum(nums, target) {\n  // Your code here\n}",
        time_limit=30,
    ),
    Problem(
        title="Reverse String",
        description=(
            "Write a function that reverses a string. The input string is given as an "
            "array of characters s. Modify the input array in-place."
        ),
        starter_code="function reverseString(s) {\n  // Your code here\n}",
        time_limit=20,
    ),
    Problem(
        title="Valid Parentheses",
        description=(
            "Given a string containing just the characters '(', ')', '{', '}', '[' and ']', "
            "determine if the input string is valid."
        ),
        starter_code="function isValid(s) {\n  // Your code here\n}",
        time_limit=45,
    ),
]


def seed(database, drop: bool = False):
    if drop:
        for name in ("problems", "sessions", "integrity_events", "snapshots"):
            database[name].delete_many({})

    created = []
    for problem in SAMPLE_PROBLEMS:
        problem_doc = to_document(problem.model_copy(update={"id": str(uuid.uuid4())}))
        database.problems.insert_one(problem_doc)
        session = TestSession(
            id=str(uuid.uuid4()),
            problem_id=problem_doc["_id"],
            status=SessionStatus.IN_PROGRESS,
        )
        database.sessions.insert_one(to_document(session))
        created.append((problem.title, session.id))
    return created


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--drop", action="store_true", help="clear existing problems and sessions first")
    args = parser.parse_args(argv)

    for title, session_id in seed(sync_database, drop=args.drop):
        print(f"{title}: /session/{session_id}")


if __name__ == "__main__":
    main()
