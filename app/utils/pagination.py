def paginated(query, page, limit, serialize=None):
    serialize = serialize or (lambda obj: obj.to_dict())
    result = query.paginate(page=page, per_page=limit, error_out=False)
    return {
        "data": [serialize(item) for item in result.items],
        "meta": {
            "total": result.total,
            "page": page,
            "limit": limit,
            "total_pages": result.pages,
        },
    }
