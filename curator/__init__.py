"""
Show notes link curator core package.

Modules
───────
models        Pydantic data models (Topic, RawLink, ProcessedTopic, LinkItem, CacheEntry)
url_syntax    offline URL shape checks (protocol, TLD, placeholder hosts)
error_pages   soft-404 / paywall fingerprints over fetched HTML
validator     deep URL validation (fetch + content inspection), batch validation
cache         SQLite-backed validation verdict cache
topics        Claude topic extraction from transcripts
policy        domain / topic exclusion lists
parsers       structured and free-text link response parsing
link_finder   Claude web-search and Brave search link providers
assembler     ProcessedTopic → LinkItem assembly and de-duplication
export        Markdown / text / HTML renderings of checked links
session       per-run curation state (stage, toggles, empty-state)
pipeline      transcript → topics → links → validated LinkItems
"""
