"""
Data Loader Script - Loads a class roster and its evaluations via the API.

Reads a JSON file shaped like:

    {
        "students": [{"ref": "ana", "name": "Ana Silva", "age": 7, "grade": "1º", "class_id": "c-1"}],
        "evaluations": [{"student": "ana", "competency_id": "p1", "level": "achieved",
                         "period": "b1", "kind": "test", "score": 8}]
    }

Students are enrolled first; evaluations reference them by "ref" and are
recorded in file order, so the last one per student sets its standing.

Usage:
    python load_data.py roster.json                          # Uses default URL
    python load_data.py roster.json http://localhost:8000    # Custom API URL
"""

import json
import os
import sys

import httpx


def load(client: httpx.Client, data: dict) -> dict:
    """
    Post the roster and evaluations with an already configured client.

    Returns a summary with enrolled/recorded counts and the per-row errors.
    """
    ids_by_ref = {}
    summary = {"enrolled": 0, "recorded": 0, "errors": []}

    for row in data.get("students", []):
        body = {k: row[k] for k in ("name", "age", "grade", "class_id") if k in row}
        resp = client.post("/api/students", json=body)
        if resp.status_code != 201:
            summary["errors"].append({"student": row.get("ref") or row.get("name"),
                                      "status": resp.status_code, "detail": resp.json().get("detail")})
            continue
        ids_by_ref[row.get("ref") or row["name"]] = resp.json()["id"]
        summary["enrolled"] += 1

    for row in data.get("evaluations", []):
        student_id = ids_by_ref.get(row.get("student"), row.get("student_id"))
        if student_id is None:
            summary["errors"].append({"evaluation": row, "status": None,
                                      "detail": "unknown student ref '{}'".format(row.get("student"))})
            continue
        body = {k: v for k, v in row.items() if k != "student"}
        body["student_id"] = student_id
        resp = client.post("/api/evaluations", json=body)
        if resp.status_code != 201:
            summary["errors"].append({"evaluation": row, "status": resp.status_code,
                                      "detail": resp.json().get("detail")})
            continue
        summary["recorded"] += 1

    return summary


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    data_file = sys.argv[1]
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:8000")

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    print(f"Loading data from: {data_file}")
    with open(data_file, 'r', encoding='utf-8') as f:
        data = json.load(f)

    print(f"Found {len(data.get('students', []))} students and "
          f"{len(data.get('evaluations', []))} evaluations")
    print(f"Sending to: {api_url}")
    print()

    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        result = load(client, data)

    print("=" * 60)
    print("LOAD SUMMARY")
    print("=" * 60)
    print(f"  Students Enrolled:     {result['enrolled']}")
    print(f"  Evaluations Recorded:  {result['recorded']}")
    print(f"  Errors:                {len(result['errors'])}")
    print("=" * 60)

    for error in result["errors"]:
        print(f"  ❌ {error.get('student') or error.get('evaluation')}: "
              f"{error['status']} {error['detail']}")

    print()
    print("✅ Data loading complete!")


if __name__ == "__main__":
    main()
