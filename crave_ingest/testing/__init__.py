from crave_ingest.testing.checkpoint_store_test_kit import CheckpointStoreTestKit

__all__ = ["CheckpointStoreTestKit"]
