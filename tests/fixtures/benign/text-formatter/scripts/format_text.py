"""Reflow paragraphs of a text file."""

import sys
import textwrap


def reflow(text, width=72):
    paragraphs = [p.strip() for p in text.split("\n\n")]
    return "\n\n".join(textwrap.fill(p, width=width) for p in paragraphs if p)


if __name__ == "__main__":
    with open(sys.argv[1], encoding="utf-8") as handle:
        print(reflow(handle.read()))
