"""Building blocks of event selection: detection, discovery, labeling and I/O."""
