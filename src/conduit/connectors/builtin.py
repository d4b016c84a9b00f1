"""
Built-in service descriptors.

Descriptors only: adding a service never requires code, just another entry.
"""

from typing import Any, Dict, List

BUILTIN_SERVICES: List[Dict[str, Any]] = [
    {
        "id": "google-drive",
        "name": "Google Drive",
        "description": "Google Drive file storage and management",
        "authProvider": "oauth2",
        "dataTransformer": "json",
        "baseUrl": "https://www.googleapis.com/drive/v3",
        "authDefaults": {
            "token_url": "https://oauth2.googleapis.com/token",
            "scope": "https://www.googleapis.com/auth/drive.file",
        },
        "endpoints": {
            "listFiles": {
                "method": "GET",
                "path": "/files",
                "defaultParams": {
                    "pageSize": 10,
                    "fields": "files(id,name,mimeType,modifiedTime)",
                },
            },
            "getFile": {
                "method": "GET",
                "path": "/files/{fileId}",
                "defaultParams": {"fields": "id,name,mimeType,modifiedTime,size,webViewLink"},
            },
            "createFile": {
                "method": "POST",
                "path": "/files",
                "contentType": "application/json",
            },
        },
    },
    {
        "id": "github",
        "name": "GitHub",
        "description": "GitHub repository management",
        "authProvider": "bearer-token",
        "dataTransformer": "json",
        "baseUrl": "https://api.github.com",
        "endpoints": {
            "listRepositories": {
                "method": "GET",
                "path": "/user/repos",
                "defaultParams": {"sort": "updated", "per_page": 10},
                "headers": {"Accept": "application/vnd.github+json"},
            },
            "getRepository": {
                "method": "GET",
                "path": "/repos/{owner}/{repo}",
                "headers": {"Accept": "application/vnd.github+json"},
            },
            "createRepository": {
                "method": "POST",
                "path": "/user/repos",
                "contentType": "application/json",
            },
        },
    },
    {
        "id": "dropbox",
        "name": "Dropbox",
        "description": "Dropbox file storage and sharing",
        "authProvider": "oauth2",
        "dataTransformer": "json",
        "baseUrl": "https://api.dropboxapi.com/2",
        "authDefaults": {"token_url": "https://api.dropboxapi.com/oauth2/token"},
        "endpoints": {
            "listFiles": {
                "method": "POST",
                "path": "/files/list_folder",
                "contentType": "application/json",
            },
            "getFile": {
                "method": "POST",
                "path": "/files/get_metadata",
                "contentType": "application/json",
            },
            "uploadFile": {
                "method": "POST",
                "path": "/files/upload",
                "contentType": "application/octet-stream",
                "headers": {"Dropbox-API-Arg": "{}"},
            },
        },
    },
    {
        "id": "slack",
        "name": "Slack",
        "description": "Slack messaging and collaboration",
        "authProvider": "bearer-token",
        "dataTransformer": "json",
        "baseUrl": "https://slack.com/api",
        "endpoints": {
            "listChannels": {"method": "GET", "path": "/conversations.list"},
            "postMessage": {
                "method": "POST",
                "path": "/chat.postMessage",
                "contentType": "application/json",
            },
            "getUsers": {"method": "GET", "path": "/users.list"},
        },
    },
    {
        "id": "trello",
        "name": "Trello",
        "description": "Trello project management",
        "authProvider": "api-key",
        "dataTransformer": "json",
        "baseUrl": "https://api.trello.com/1",
        "authDefaults": {"query_param": "key"},
        "endpoints": {
            "listBoards": {
                "method": "GET",
                "path": "/members/me/boards",
                "defaultParams": {"fields": "name,url,desc"},
            },
            "getBoard": {
                "method": "GET",
                "path": "/boards/{boardId}",
                "defaultParams": {"fields": "name,url,desc"},
            },
            "createCard": {
                "method": "POST",
                "path": "/cards",
                "contentType": "application/json",
            },
        },
    },
]
