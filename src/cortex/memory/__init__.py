"""Memory store: markdown records plus per-category YAML indexes.

Layout of one store:
    {store_root}/
    ├── index.yaml                     # Root index: top-level categories
    ├── standards/
    │   ├── index.yaml                 # Direct memories + direct subcategories
    │   ├── naming.md                  # standards/naming (frontmatter + body)
    │   └── typescript/
    │       ├── index.yaml
    │       └── style.md               # standards/typescript/style
    └── ...

Record files are the source of truth. Indexes are patched on every write
(``maintenance``) and rebuilt from disk by ``reindex``.
"""
