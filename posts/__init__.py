"""posts/ -- Blog posts guarded by the posts.* permissions.

Layer rule: posts/ may import from auth/ and core/, never from api/.
"""
