# Specimen Guide — identity, validation and diagram core for bench protocols
# Layer 1: identity.py   — specimen token codec (labels, association keys)
# Layer 2: aliases.py    — provenance alias graph
# Layer 3: validation.py — bounded confirmation state machine
# Layer 4: diagram.py    — scene graph layout (shapes.py / svg.py build and draw on it)
