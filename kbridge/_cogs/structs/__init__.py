"""
All the data structures passed between the bridge's layers.

The structures are purely data-manipulative and computational.
No external calls or any i/o activities are done here.
"""
