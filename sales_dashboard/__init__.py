"""
Agency Sales Dashboard analytics backend

Turns three loosely structured ERP CSV exports (orders, customers, product
lines) into a merged dataset and per-agency KPIs for a web dashboard.

To ingest an uploaded file:
    Pass its bytes to loaders.decode_csv_bytes(), then to
    loaders.validate_csv_rows(rows, source). The decoder works out the
    encoding, delimiter and header row by itself.

To connect a front end:
    Build the dataset with transforms.build_dataset_from_rows(), keep it in
    session_store, and call dashboard.calculate_analysis(dataset, agency)
    to get a plain dict for cards, charts and tables.

To accept a new header spelling:
    Add it to the alias list of the column in config.COLUMN_ALIASES.
"""
