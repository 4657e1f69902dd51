#!/usr/bin/env python
"""
Example script for calling the Trademark Clearance API.

This script posts a proposed mark together with a handful of existing marks
to the search endpoint and prints the ranked conflicts.
"""

import json
import sys
import httpx
import asyncio
from typing import Any, Dict, Optional

API_URL = "http://localhost:8000/search"

# Sample clearance request
SAMPLE_REQUEST = {
    "mark_text": "SKYWORD",
    "classes": [9, 35],
    "candidates": [
        {"id": 1, "serial_id": "97100001", "text": "SKYWORKS", "owner": "Skyworks Solutions", "classes": [9]},
        {"id": 2, "serial_id": "97100002", "text": "SKY WORD", "classes": [35], "status": "dead"},
        {"id": 3, "serial_id": "97100003", "text": "SKYWARD", "classes": [41]},
        {"id": 4, "serial_id": "97100004", "text": "WORDSKY", "classes": [9]},
    ],
}


async def run_search(request_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Call the API to run a clearance search.

    Args:
        request_data: The mark, its classes and the candidates to compare against

    Returns:
        Dict[str, Any]: The API response with ranked conflicts
    """
    async with httpx.AsyncClient() as client:
        response = await client.post(API_URL, json=request_data, timeout=30.0)

        if response.status_code != 200:
            print(f"Error: {response.status_code}")
            print(response.text)
            return {}

        return response.json()


def display_results(results: Dict[str, Any]) -> None:
    """
    Display the search results in a readable format.

    Args:
        results: The API response
    """
    if not results:
        return

    summary = results.get("summary", {})
    print("\n====== TRADEMARK CLEARANCE SEARCH ======\n")
    print(f"OVERALL RISK: {summary.get('overall_risk', 'N/A').upper()}")
    print(f"Conflicts: {summary.get('total', 0)} "
          f"(high {summary.get('high', 0)}, medium {summary.get('medium', 0)}, low {summary.get('low', 0)})\n")

    for conflict in results.get("conflicts", []):
        record = conflict["record"]
        breakdown = conflict["breakdown"]
        print(f"- {record['text']} (serial {record['serial_id']}, classes {sorted(record['classes'])})")
        print(f"  similarity {breakdown['overall']}% | exact {breakdown['exact']} visual {breakdown['visual']} "
              f"sound {breakdown['phonetic']} fuzzy {breakdown['fuzzy']}")
        print(f"  {conflict['risk']['explanation']}")


async def main(request_data: Optional[Dict[str, Any]] = None) -> None:
    """
    Main function to run the example.

    Args:
        request_data: Optional custom request data
    """
    if request_data is None:
        request_data = SAMPLE_REQUEST

    print("Calling Trademark Clearance API...")
    print(f"Searching '{request_data['mark_text']}' in classes {request_data['classes']}")

    results = await run_search(request_data)
    display_results(results)


if __name__ == "__main__":
    # Check if custom JSON file path is provided
    if len(sys.argv) > 1:
        try:
            with open(sys.argv[1], 'r') as f:
                custom_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error loading JSON file: {e}")
            sys.exit(1)
        asyncio.run(main(custom_data))
    else:
        asyncio.run(main())
