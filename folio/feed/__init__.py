from folio.feed.aggregator import build_feed, commits_to_items, default_sources, merge_feed, records_to_items

__all__ = ["build_feed", "commits_to_items", "default_sources", "merge_feed", "records_to_items"]
