from_db = {
    'comment_': 'comment',
    'type_': 'type',
    'version': None
}
