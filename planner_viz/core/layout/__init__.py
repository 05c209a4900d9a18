"""Layout engine.

`layered_layout` computes automatic positions (Sugiyama-style, on networkx);
`merge_layout` overlays saved manual positions and builds the flow graph.
Both are pure: same inputs, same output.
"""
