from __future__ import annotations

import argparse

from missed_call_router.classifier import classify_message


def main() -> None:
    parser = argparse.ArgumentParser(description="Show how a customer message is classified")
    parser.add_argument("text", type=str)
    args = parser.parse_args()

    result = classify_message(args.text)

    print(f"urgency:  {result.urgency.value}")
    print(f"postcode: {result.location}")
    print(f"reply:    {result.reply}")


if __name__ == "__main__":
    main()
