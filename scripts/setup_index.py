"""Create the Pinecone index if it is missing and print its statistics."""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from knowledge.config import settings
from knowledge.exceptions import ConfigurationError
from knowledge.retrieval.vector_store import VectorStoreClient


def setup_index(index_name: str | None = None, dimension: int | None = None) -> None:
    try:
        store = VectorStoreClient(index_name=index_name)
    except ConfigurationError as e:
        print(f"ERROR: {e.message}")
        print("Add PINECONE_API_KEY to your .env file.")
        sys.exit(1)

    dimension = dimension or settings.embedding_dimensions
    print(f"Index: {store.index_name} (dimension {dimension}, metric {settings.pinecone_metric})")

    if store.create_index_if_not_exists(dimension):
        print("Created index and waited for it to become ready.")
    else:
        print("Index already exists.")

    stats = store.get_stats()
    print(f"Dimension: {stats.dimension}")
    print(f"Total vectors: {stats.total_vector_count}")
    print(f"Fullness: {stats.index_fullness:.2%}")
    for name, ns in sorted(stats.namespaces.items()):
        print(f"  {name or '(default)'}: {ns.vector_count} vectors")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())

    parser = argparse.ArgumentParser()
    parser.add_argument("--index", default=None)
    parser.add_argument("--dimension", type=int, default=None)
    args = parser.parse_args()
    setup_index(args.index, args.dimension)
